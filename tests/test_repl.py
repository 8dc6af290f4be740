import importlib.util
import sys
from pathlib import Path
import uuid
import pytest


def _load_repl_module():
    """Dynamically load the top-level dm.py (REPL) as a module with a unique name."""
    repl_path = Path(__file__).resolve().parents[1] / "dm.py"
    mod_name = f"dm_repl_for_test_{uuid.uuid4().hex}"
    spec = importlib.util.spec_from_file_location(mod_name, str(repl_path))
    mod = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = mod
    assert spec.loader is not None
    spec.loader.exec_module(mod)
    return mod


@pytest.fixture(autouse=True)
def no_args(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["dm.py"])


def feed(monkeypatch, repl, lines):
    it = iter(lines)

    def fake_read_line(prompt: str) -> str:
        try:
            return next(it)
        except StopIteration:
            raise EOFError
    monkeypatch.setattr(repl, "read_line", fake_read_line)


def test_repl_exit_immediately(monkeypatch, capsys):
    repl = _load_repl_module()
    feed(monkeypatch, repl, ["exit"])
    repl.main()
    out = capsys.readouterr().out
    assert "dmscript REPL v0.1" in out
    assert "Type 'exit' or press Ctrl+D to quit." in out


def test_repl_prints_side_effects_and_values(monkeypatch, capsys):
    repl = _load_repl_module()
    feed(monkeypatch, repl, [
        "print('hello from dm');",
        "let x = 1;",
        "x + 2;",
        "exit",
    ])
    repl.main()
    out, err = capsys.readouterr()
    assert "hello from dm" in out
    assert "=> 3" in out
    assert err == ""


def test_repl_errors_print_to_stderr(monkeypatch, capsys):
    repl = _load_repl_module()
    feed(monkeypatch, repl, ["1 / 0;", "exit"])
    repl.main()
    out, err = capsys.readouterr()
    assert "dmscript REPL v0.1" in out
    assert "DivisionByZero: Division by zero" in err


def test_repl_eof_quits(monkeypatch, capsys):
    repl = _load_repl_module()
    feed(monkeypatch, repl, [])
    repl.main()
    out = capsys.readouterr().out
    assert "Exiting." in out


def test_run_script_file(tmp_path, monkeypatch, capsys):
    repl = _load_repl_module()
    script = tmp_path / "prog.dm"
    script.write_text("let a = 20;\nprint('a', a);\na + 22;\n")
    monkeypatch.setattr(sys, "argv", ["dm.py", str(script)])
    repl.main()
    out = capsys.readouterr().out.splitlines()
    assert out == ["a 20", "=> null", "=> 42"]


def test_run_script_file_error_exits_nonzero(tmp_path, monkeypatch, capsys):
    repl = _load_repl_module()
    script = tmp_path / "bad.dm"
    script.write_text("undefined_thing;\n")
    monkeypatch.setattr(sys, "argv", ["dm.py", str(script)])
    with pytest.raises(SystemExit) as ei:
        repl.main()
    assert ei.value.code == 1
    assert "Undefined variable 'undefined_thing'" in capsys.readouterr().err


def test_missing_file(monkeypatch, capsys):
    repl = _load_repl_module()
    monkeypatch.setattr(sys, "argv", ["dm.py", "/nonexistent/file.dm"])
    with pytest.raises(SystemExit):
        repl.main()
    assert "file not found" in capsys.readouterr().err


def test_ast_dump(tmp_path, monkeypatch, capsys):
    repl = _load_repl_module()
    script = tmp_path / "prog.dm"
    script.write_text("let a = 1 + 2 * 3; if (a) print(a);")
    monkeypatch.setattr(sys, "argv", ["dm.py", "--ast", str(script)])
    repl.main()
    assert capsys.readouterr().out.splitlines() == [
        "let a = (1 + (2 * 3));",
        "if (a) print(a);",
    ]
