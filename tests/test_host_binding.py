from dmscript import ScriptRunner, DMHost, InterpreterConfig, dm_api_method


def assert_ok(res, expected=None):
    assert res.status == "success", f"expected success, got {res}"
    if expected is not None:
        assert res.value == expected, f"expected {expected!r}, got {res.value!r}"


class MyHost(DMHost):
    def __init__(self):
        super().__init__()
        self._data = {"hp": 100}

    def __getitem__(self, key):
        return self._data[key]

    @dm_api_method
    def take_damage(self, amount):
        self._data["hp"] -= int(amount)
        return self._data["hp"]

    # Name chosen to collide with the stdlib 'abs' to test shadowing
    @dm_api_method
    def abs(self, x):
        return x + 1000

    def not_exposed(self):
        return "hidden"


def make_runner(host):
    return ScriptRunner(host_object=host, config=InterpreterConfig())


def test_host_methods_are_callable_from_scripts():
    host = MyHost()
    runner = make_runner(host)
    res = runner.handle_script("take_damage(5);")
    assert_ok(res, 95)
    assert host["hp"] == 95


def test_undecorated_methods_are_not_exposed():
    runner = make_runner(MyHost())
    res = runner.handle_script("not_exposed();")
    assert res.status == "error"
    assert "Function 'not_exposed' is not defined" in res.error_message


def test_host_methods_shadow_stdlib_and_script_overrides_host():
    runner = make_runner(MyHost())
    assert_ok(runner.handle_script("abs(1);"), 1001.0)

    # A script-level function in a nested scope hides the host binding there
    src = """
    function g(x) { function abs(v) v - 1; abs(x); }
    g(5);
    """
    assert_ok(runner.handle_script(src), 4.0)
    assert_ok(runner.handle_script("abs(1);"), 1001.0)


def test_host_arity_is_enforced():
    runner = make_runner(MyHost())
    res = runner.handle_script("take_damage();")
    assert res.status == "error"
    assert res.error_kind == "InvalidArgument"


def test_api_methods_lists_decorated_members_only():
    names = set(MyHost().api_methods())
    assert names == {"take_damage", "abs"}


def test_host_state_persists_between_scripts():
    host = MyHost()
    runner = make_runner(host)
    runner.handle_script("take_damage(10);")
    assert_ok(runner.handle_script("take_damage(10);"), 80)
