import sys
from pathlib import Path

from dmscript import ScriptRunner, Printer, parse, ParseError


# A basic line prompt; raises EOFError when stdin is exhausted.
def read_line(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    line = sys.stdin.readline()
    if not line:
        raise EOFError
    return line


def print_effects(result):
    """Print stdout side effects (`=> value` echoes and `print` calls)."""
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))


def run_script_file(file_path: str):
    """Run a dmscript file non-interactively and exit with appropriate status."""
    runner = ScriptRunner()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = runner.handle_script(source)
    print_effects(result)
    if result.status == 'error':
        print(result.error_message, file=sys.stderr)
        raise SystemExit(1)


def dump_ast(file_path: str):
    """Parse a file and print the program back as normalized source."""
    try:
        source = Path(file_path).read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    try:
        program = parse(source)
    except ParseError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(1)
    print(Printer().pformat(program))


def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    args = sys.argv[1:]
    if args and args[0] == "--ast":
        if len(args) != 2:
            print("Usage: dm.py --ast <file>", file=sys.stderr)
            raise SystemExit(2)
        dump_ast(args[1])
        return
    if args and not args[0].startswith("-"):
        run_script_file(args[0])
        return

    print("dmscript REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner()

    while True:
        try:
            line = read_line(">> ").strip()
        except EOFError:
            print("\nExiting.")
            break
        if not line:
            continue
        if line == "exit":
            break

        result = runner.handle_script(line)
        print_effects(result)
        if result.status == 'error':
            print(result.error_message, file=sys.stderr)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
