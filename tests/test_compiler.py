"""
Unit tests for compiling and running module files.
"""
import pytest
from pydantic import ValidationError

from modfile.compiler import ROOT, CompiledModuleFile, ModuleFile, ModuleKey, parse_and_compile
from modfile.config import CompilerSettings
from modfile.errors import EvalError, ExternalDepsError, FailureCode, Location
from modfile.eval import ModuleThread
from modfile.events import EventKind, StoredEventHandler
from modfile.toplevels import CallRecorder

TOPLEVELS = ["module", "module_import", "bazel_dep", "use_extension", "use_repo"]


@pytest.fixture
def handler():
    return StoredEventHandler()


@pytest.fixture
def recorder():
    return CallRecorder()


def compile_module(source, handler, toplevels=None, key=ROOT, semantics=None):
    module_file = ModuleFile.create(source, "MODULE.bazel")
    if toplevels is None:
        toplevels = CallRecorder().toplevels(TOPLEVELS)
    return parse_and_compile(module_file, key, semantics or CompilerSettings(), toplevels, handler)


class TestModuleKey:
    """Tests for module key rendering."""

    def test_root(self):
        assert str(ROOT) == "<root>"

    def test_name_and_version(self):
        assert str(ModuleKey(name="foo", version="1.0")) == "foo@1.0"

    def test_empty_version(self):
        assert str(ModuleKey(name="foo")) == "foo@_"


class TestParseAndCompile:
    """Successful compilation."""

    def test_import_statements(self, handler):
        compiled = compile_module("module_import(\"a\")\nx = 1\nmodule_import('b')\n", handler)
        assert [(s.import_label, s.location) for s in compiled.import_statements] == [
            ("a", Location(file="MODULE.bazel", line=1, column=1)),
            ("b", Location(file="MODULE.bazel", line=3, column=1)),
        ]
        assert handler.events == []

    def test_artifact_fields(self, handler):
        compiled = compile_module('module(name = "foo")\n', handler)
        assert compiled.module_file.location == "MODULE.bazel"
        assert compiled.import_statements == ()
        assert compiled.program.globals == []
        assert "module" in compiled.predeclared_env.predeclared

    def test_deterministic(self, handler):
        source = 'module_import("a")\nbazel_dep(name = "x", version = "1")\nmodule_import("b")\n'
        first = compile_module(source, handler)
        second = compile_module(source, handler)
        assert first.import_statements == second.import_statements
        assert first.program.source == second.program.source

    def test_fresh_environment(self, handler):
        """Each compilation owns a private copy of the toplevels."""
        toplevels = {"module_import": len, "extra": 1}
        first = compile_module("x = extra\n", handler, toplevels)
        second = compile_module("x = extra\n", handler, toplevels)
        toplevels["extra"] = 2
        assert first.predeclared_env is not second.predeclared_env
        assert first.predeclared_env.predeclared["extra"] == 1

    def test_immutable(self, handler):
        compiled = compile_module("", handler)
        with pytest.raises(ValidationError):
            compiled.import_statements = ()

    def test_classmethod_entry_point(self, handler):
        module_file = ModuleFile.create('module_import("a")\n', "MODULE.bazel")
        compiled = CompiledModuleFile.parse_and_compile(
            module_file, ROOT, CompilerSettings(), {"module_import": len}, handler)
        assert compiled.import_statements[0].import_label == "a"

    def test_bytes_content(self, handler):
        module_file = ModuleFile.create('module_import("ünï")\n'.encode("utf-8"), "MODULE.bazel")
        compiled = parse_and_compile(module_file, ROOT, None, {"module_import": len}, handler)
        assert compiled.import_statements[0].import_label == "ünï"

    def test_invalid_utf8_is_replaced(self, handler):
        """Undecodable bytes become U+FFFD instead of failing the compile."""
        module_file = ModuleFile.create(b'module_import("a\xff")\n', "MODULE.bazel")
        compiled = parse_and_compile(module_file, ROOT, None, {"module_import": len}, handler)
        assert compiled.import_statements[0].import_label == "a\ufffd"
        assert handler.events == []

    def test_no_event_handler(self):
        compiled = compile_module("module_import('a')\n", None)
        assert len(compiled.import_statements) == 1


class TestCompileFailures:
    """Failures replay diagnostics and raise a BAD_MODULE error naming the module."""

    def test_parse_error(self, handler):
        with pytest.raises(ExternalDepsError) as exc:
            compile_module("x = (\n", handler, key=ModuleKey(name="foo", version="1.0"))
        assert exc.value.code == FailureCode.BAD_MODULE
        assert exc.value.message == "error parsing MODULE.bazel file for foo@1.0"
        assert handler.has_errors

    def test_directive_result_used(self, handler):
        with pytest.raises(ExternalDepsError) as exc:
            compile_module("x = module_import('a')\n", handler)
        assert exc.value.code == FailureCode.BAD_MODULE
        assert exc.value.message == "syntax error in MODULE.bazel file for <root>"
        [event] = handler.events
        assert event.kind == EventKind.ERROR
        assert event.location == Location(file="MODULE.bazel", line=1, column=5)
        assert event.message == "the `module_import` directive MUST be called directly at the top-level"

    def test_all_errors_replayed_in_order(self, handler):
        with pytest.raises(ExternalDepsError):
            compile_module("if x:\n  pass\nmodule_import(1)\n", handler)
        assert [e.location.line for e in handler.events] == [1, 3]

    def test_resolution_error(self, handler):
        with pytest.raises(ExternalDepsError) as exc:
            compile_module("bazel_dep(name = undefined_name)\n", handler)
        assert exc.value.message == "syntax error in MODULE.bazel file for <root>"
        [event] = handler.events
        assert event.message == "name 'undefined_name' is not defined"

    def test_redeclaration(self, handler):
        with pytest.raises(ExternalDepsError):
            compile_module("x = 1\nx = 2\n", handler)
        assert handler.events[0].message == "'x' redeclared at MODULE.bazel:1:1"

    def test_file_kind_in_message(self, handler):
        semantics = CompilerSettings(file_kind="VENDOR.bazel", where="VENDOR.bazel files")
        with pytest.raises(ExternalDepsError) as exc:
            compile_module("def f():\n  pass\n", handler, semantics=semantics)
        assert exc.value.message == "syntax error in VENDOR.bazel file for <root>"
        assert handler.events[0].message == "functions may not be defined in VENDOR.bazel files"

    def test_error_is_chained(self, handler):
        with pytest.raises(ExternalDepsError) as exc:
            compile_module("for x in y:\n  pass\n", handler)
        assert exc.value.__cause__ is not None


class TestRun:
    """Running a compiled module file."""

    def test_calls_are_recorded(self, handler):
        thread = ModuleThread()
        recorder = CallRecorder(thread)
        source = (
            'module(name = "foo", version = "1.0")\n'
            'bazel_dep(name = "bar", version = "2.0")\n'
        )
        compiled = compile_module(source, handler, recorder.toplevels(TOPLEVELS))
        compiled.run_on_thread(thread)
        assert [(c.name, c.kwargs) for c in recorder.calls] == [
            ("module", {"name": "foo", "version": "1.0"}),
            ("bazel_dep", {"name": "bar", "version": "2.0"}),
        ]
        assert recorder.calls[1].location == Location(file="MODULE.bazel", line=2, column=1)

    def test_extension_proxy(self, handler):
        thread = ModuleThread()
        recorder = CallRecorder(thread)
        source = (
            'ext = use_extension("//:ext.bzl", "ext")\n'
            'ext.tag(name = "x")\n'
            'use_repo(ext, "repo")\n'
        )
        compile_module(source, handler, recorder.toplevels(TOPLEVELS)).run_on_thread(thread)
        assert [c.name for c in recorder.calls] == ["use_extension", "use_extension.tag", "use_repo"]
        assert str(recorder.calls[2].args[0]) == "<use_extension#0>"

    def test_globals_after_run(self, handler):
        compiled = compile_module('VERSION = "1.0"\nmodule(version = VERSION)\n', handler)
        compiled.run_on_thread(ModuleThread())
        assert compiled.predeclared_env.globals["VERSION"] == "1.0"

    def test_eval_error_propagates(self, handler):
        compiled = compile_module("x = 1\nfail('bad module')\n", handler)
        with pytest.raises(EvalError) as exc:
            compiled.run_on_thread(ModuleThread())
        assert exc.value.message == "Error in fail: bad module"
        assert exc.value.location == Location(file="MODULE.bazel", line=2, column=1)

    def test_cancelled(self, handler):
        compiled = compile_module("x = 1\n", handler)
        thread = ModuleThread()
        thread.cancel()
        with pytest.raises(InterruptedError):
            compiled.run_on_thread(thread)
