import pytest

from dmscript import load_config, InterpreterConfig, ScriptRunner


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DMSCRIPT_DEBUG", "DMSCRIPT_MAX_CALL_DEPTH",
                 "DMSCRIPT_MAX_LOOP_ITERS", "DMSCRIPT_RETURN_UNWINDS"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    assert load_config() == InterpreterConfig()
    cfg = InterpreterConfig()
    assert cfg.max_call_depth == 64
    assert cfg.max_loop_iterations == 100000
    assert cfg.return_unwinds is False
    assert cfg.echo_results is True


def test_yaml_file(tmp_path):
    path = tmp_path / "dmscript.yaml"
    path.write_text("max_call_depth: 12\nreturn_unwinds: true\nmax_loop_iterations: null\n")
    cfg = load_config(path)
    assert cfg.max_call_depth == 12
    assert cfg.return_unwinds is True
    assert cfg.max_loop_iterations is None


def test_empty_yaml_file_uses_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == InterpreterConfig()


def test_environment_beats_file_and_overrides_beat_environment(tmp_path, monkeypatch):
    path = tmp_path / "dmscript.yaml"
    path.write_text("max_call_depth: 12\n")
    monkeypatch.setenv("DMSCRIPT_MAX_CALL_DEPTH", "20")
    monkeypatch.setenv("DMSCRIPT_MAX_LOOP_ITERS", "off")
    monkeypatch.setenv("DMSCRIPT_DEBUG", "yes")
    cfg = load_config(path)
    assert cfg.max_call_depth == 20
    assert cfg.max_loop_iterations is None
    assert cfg.debug is True
    assert load_config(path, max_call_depth=5).max_call_depth == 5


def test_false_like_strings(monkeypatch):
    monkeypatch.setenv("DMSCRIPT_RETURN_UNWINDS", "0")
    assert load_config().return_unwinds is False


@pytest.mark.parametrize("bad", [{"nope": 1}, {"max_call_depth": 0}, {"max_call_depth": "x"}])
def test_invalid_values(bad):
    with pytest.raises(ValueError):
        load_config(**bad)


def test_non_mapping_yaml_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError, match="must contain a mapping"):
        load_config(path)


def test_runner_uses_environment_config(monkeypatch):
    monkeypatch.setenv("DMSCRIPT_MAX_LOOP_ITERS", "3")
    runner = ScriptRunner()
    res = runner.handle_script("let i = 0; while (true) i = i + 1;")
    assert res.status == "error"
    assert res.error_kind == "LimitExceeded"


def test_debug_logging_goes_to_stderr(capsys):
    runner = ScriptRunner(config=InterpreterConfig(debug=True))
    runner.handle_script("abs(1);")
    err = capsys.readouterr().err
    assert "[DBG] Evaluator.call abs NativeFn argc 1" in err


def test_echo_can_be_disabled():
    runner = ScriptRunner(config=InterpreterConfig(echo_results=False))
    res = runner.handle_script("1 + 1;")
    assert res.value == 2.0
    assert res.output == []
