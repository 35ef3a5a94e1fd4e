"""
Unit tests for program evaluation: modules, threads, builtins and error locations.
"""
import pytest

from modfile.config import CompilerSettings
from modfile.errors import EvalError, SyntaxErrors
from modfile.eval import UNIVERSE_NAMES, Module, ModuleThread, exec_file_program
from modfile.program import Program
from modfile.syntax import parse_file


def compile_source(source, predeclared=None):
    file = parse_file(source, "test.star")
    module = Module.with_predeclared(CompilerSettings(), predeclared or {})
    return Program.compile_file(file, module), module


def run(source, predeclared=None, thread=None):
    program, module = compile_source(source, predeclared)
    exec_file_program(program, module, thread or ModuleThread())
    return module.globals


class TestModule:
    """Tests for the predeclared environment."""

    def test_predeclared_is_a_copy(self):
        table = {"a": 1}
        module = Module.with_predeclared(None, table)
        table["a"] = 2
        table["b"] = 3
        assert dict(module.predeclared) == {"a": 1}

    def test_predeclared_is_read_only(self):
        module = Module.with_predeclared(None, {"a": 1})
        with pytest.raises(TypeError):
            module.predeclared["a"] = 2

    def test_globals_are_read_only(self):
        program, module = compile_source("x = 1\n")
        exec_file_program(program, module, ModuleThread())
        with pytest.raises(TypeError):
            module.globals["x"] = 2

    def test_globals_published_on_failure(self):
        program, module = compile_source("x = 1\ny = x // 0\n")
        with pytest.raises(EvalError):
            exec_file_program(program, module, ModuleThread())
        assert dict(module.globals) == {"x": 1}

    def test_universe_names(self):
        assert {"None", "True", "False", "len", "fail", "print", "type"} <= UNIVERSE_NAMES


class TestBuiltins:
    """Tests for the universe of builtins."""

    def test_type(self):
        g = run("t = [type(1), type(''), type(None), type([]), type({}), type(()), type(1.0), type(True), type(len)]\n")
        assert g["t"] == ["int", "string", "NoneType", "list", "dict", "tuple", "float", "bool", "function"]

    def test_hash_is_deterministic(self):
        g = run("a = hash('a')\nb = hash('ab')\nc = hash('')\n")
        assert (g["a"], g["b"], g["c"]) == (97, 97 * 31 + 98, 0)

    def test_hash_wraps_to_signed_32_bits(self):
        assert -(2 ** 31) <= run("h = hash('zzzzzzzzzzzzzzzz')\n")["h"] < 2 ** 31

    def test_hash_requires_string(self):
        with pytest.raises(EvalError) as exc:
            run("h = hash(1)\n")
        assert "want 'string'" in exc.value.message

    def test_sequences(self):
        g = run(
            "e = enumerate(['a', 'b'])\n"
            "r = reversed([1, 2, 3])\n"
            "z = zip([1, 2], ['a', 'b'])\n"
            "s = sorted([3, 1, 2], reverse = True)\n"
            "m = [min(3, 1), max([4, 9]), abs(-2)]\n"
        )
        assert g["e"] == [(0, "a"), (1, "b")]
        assert g["r"] == [3, 2, 1]
        assert g["z"] == [(1, "a"), (2, "b")]
        assert g["s"] == [3, 2, 1]
        assert g["m"] == [1, 9, 2]

    def test_attributes(self):
        g = run("d = 'abc'\nh = [hasattr(d, 'upper'), hasattr(d, '__class__'), getattr(d, 'nope', 7)]\n")
        assert g["h"] == [True, False, 7]
        assert "upper" in run("names = dir('')\n")["names"]
        assert not any(name.startswith("_") for name in run("names = dir('')\n")["names"])

    def test_getattr_private(self):
        with pytest.raises(EvalError) as exc:
            run("x = getattr('', '__class__')\n")
        assert exc.value.message == "'string' value has no field or method '__class__'"

    def test_fail(self):
        with pytest.raises(EvalError) as exc:
            run("x = 1\nfail('boom', x)\n")
        assert exc.value.message == "Error in fail: boom 1"
        assert exc.value.location.line == 2

    def test_fail_separator(self):
        with pytest.raises(EvalError) as exc:
            run("fail('a', 'b', sep = '-')\n")
        assert exc.value.message == "Error in fail: a-b"

    def test_no_python_builtins(self):
        """Only the universe is visible; Python's builtins are not."""
        file = parse_file("x = open\n", "test.star")
        with pytest.raises(SyntaxErrors):
            Program.compile_file(file, Module.with_predeclared(None, {}))


class TestPrint:
    """`print` goes to the thread's print handler with the call's location."""

    def test_print_handler(self):
        seen = []
        thread = ModuleThread(print_handler=lambda location, message: seen.append((location, message)))
        run("x = 1\nprint('hi', x)\n", thread=thread)
        [(location, message)] = seen
        assert message == "hi 1"
        assert (location.file, location.line) == ("test.star", 2)

    def test_print_separator(self):
        seen = []
        thread = ModuleThread(print_handler=lambda location, message: seen.append(message))
        run("print(1, 2, sep = ', ')\n", thread=thread)
        assert seen == ["1, 2"]

    def test_print_inside_function(self):
        seen = []
        thread = ModuleThread(print_handler=lambda location, message: seen.append(location.line))
        run("def f():\n  print('x')\nf()\n", thread=thread)
        assert seen == [2]

    def test_default_print_handler(self, capsys):
        run("print('hello')\n")
        err = capsys.readouterr().err
        assert err.startswith("DEBUG test.star:1:")
        assert err.rstrip().endswith(": hello")


class TestErrors:
    """Failures inside a program become located EvalErrors."""

    def test_python_error_is_located(self):
        with pytest.raises(EvalError) as exc:
            run("x = 1\ny = x // 0\n")
        assert exc.value.message == "division by zero"
        assert exc.value.location.line == 2
        assert str(exc.value).startswith("test.star:2:")

    def test_error_in_function_points_into_body(self):
        with pytest.raises(EvalError) as exc:
            run("def f(d):\n  return d['missing']\nx = f({})\n")
        assert exc.value.location.line == 2
        assert "missing" in exc.value.message

    def test_type_error(self):
        with pytest.raises(EvalError) as exc:
            run("x = 1 + 'a'\n")
        assert exc.value.location.line == 1
        assert isinstance(exc.value.__cause__, TypeError)

    def test_eval_error_from_predeclared_function_is_located(self):
        def boom():
            raise EvalError("no good")

        with pytest.raises(EvalError) as exc:
            run("x = 1\nboom()\n", predeclared={"boom": boom})
        assert exc.value.message == "no good"
        assert exc.value.location.line == 2

    def test_located_eval_error_is_unchanged(self):
        program, _ = compile_source("x = 1\n")
        original = program.location_for_line(1)

        def boom():
            raise EvalError("located", original)

        with pytest.raises(EvalError) as exc:
            run("x = 1\ny = 2\nboom()\n", predeclared={"boom": boom})
        assert exc.value.location is original

    def test_load_without_loader(self):
        with pytest.raises(EvalError) as exc:
            run('load("a.star", "x")\n')
        assert exc.value.message == "cannot load 'a.star': no loader is configured"
        assert exc.value.location.line == 1

    def test_load_missing_symbol(self):
        thread = ModuleThread(loader=lambda name: {})
        with pytest.raises(EvalError) as exc:
            run('load("a.star", "x")\n', thread=thread)
        assert exc.value.message == "file 'a.star' does not contain symbol 'x'"

    def test_loader_called_once_per_module(self):
        calls = []

        def loader(name):
            calls.append(name)
            return {"a": 1, "b": 2}

        g = run('load("m", "a")\nload("m", "b")\n', thread=ModuleThread(loader=loader))
        assert calls == ["m"]
        assert (g["a"], g["b"]) == (1, 2)


class TestCancellation:
    """A cancelled thread stops at the next statement or loop iteration."""

    def test_cancel_before_run(self):
        thread = ModuleThread()
        thread.cancel()
        assert thread.cancelled
        with pytest.raises(InterruptedError):
            run("x = 1\n", thread=thread)

    def test_cancel_during_loop(self):
        thread = ModuleThread()
        calls = []

        def stop():
            calls.append(1)
            thread.cancel()

        with pytest.raises(InterruptedError):
            run("for i in range(10):\n  stop()\n", predeclared={"stop": stop}, thread=thread)
        assert calls == [1]

    def test_thread_can_run_again_after_failure(self):
        thread = ModuleThread()
        with pytest.raises(EvalError):
            run("fail('x')\n", thread=thread)
        assert run("y = 1\n", thread=thread)["y"] == 1
