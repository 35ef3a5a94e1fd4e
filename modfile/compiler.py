"""
Module file compiler.

`parse_and_compile` turns the bytes of a module file into a
`CompiledModuleFile`: it parses the file, enforces the module file syntax
rules, collects the `module_import` directives and compiles the program
against a fresh copy of the predeclared environment. Diagnostics go to the
caller's event handler; the exception raised only names the failing module.
"""
import sys
from typing import Any, Tuple

from pydantic import BaseModel, ConfigDict

from modfile.checker import ModuleImportStatement, check_module_file_syntax
from modfile.config import CompilerSettings
from modfile.errors import ExternalDepsError, FailureCode, SyntaxErrors
from modfile.eval import Module, exec_file_program
from modfile.events import replay_events_on
from modfile.program import Program
from modfile.syntax import parse_file

_VERBOSE = False


def set_verbose(value):
    """Set the global verbose flag."""
    global _VERBOSE
    _VERBOSE = value


def debug_log(message):
    """Log a debug message to stderr if verbose mode is enabled."""
    if _VERBOSE:
        print(f"\033[94mDEBUG:\033[0m {message}", file=sys.stderr)


class ModuleKey(BaseModel):
    """Identifies a module in the dependency graph."""
    model_config = ConfigDict(frozen=True)

    name: str
    version: str = ""

    def __str__(self):
        if self == ROOT:
            return "<root>"
        return f"{self.name}@{self.version or '_'}"


ROOT = ModuleKey(name="")


class ModuleFile(BaseModel):
    """The raw content of a module file and where it came from."""
    model_config = ConfigDict(frozen=True)

    content: bytes
    location: str

    @classmethod
    def create(cls, content, location):
        if isinstance(content, str):
            content = content.encode("utf-8")
        return cls(content=content, location=location)

    @property
    def text(self):
        return self.content.decode("utf-8", errors="replace")


class CompiledModuleFile(BaseModel):
    """
    A module file that parsed, passed the syntax checks and compiled.

    Attributes:
        module_file: The source this was compiled from.
        program: The executable program.
        predeclared_env: The Module the program runs in; owned by this object.
        import_statements: The file's `module_import` directives, in source order.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    module_file: ModuleFile
    program: Any
    predeclared_env: Any
    import_statements: Tuple[ModuleImportStatement, ...]

    @classmethod
    def parse_and_compile(cls, module_file, module_key, semantics, toplevels, event_handler):
        return parse_and_compile(module_file, module_key, semantics, toplevels, event_handler)

    def run_on_thread(self, thread):
        """
        Execute the program against this file's environment.

        Raises:
            EvalError: if the program fails.
            InterruptedError: if the thread is cancelled.
        """
        debug_log(f"Running {self.module_file.location}")
        exec_file_program(self.program, self.predeclared_env, thread)


def parse_and_compile(module_file, module_key, semantics=None, toplevels=None, event_handler=None):
    """
    Compile a module file.

    Args:
        module_file: The ModuleFile to compile.
        module_key: The ModuleKey named in failure messages.
        semantics: CompilerSettings; defaults apply when None.
        toplevels: Mapping of predeclared names to values. Copied, never mutated.
        event_handler: Receives every diagnostic as an ERROR event.

    Returns:
        A CompiledModuleFile.

    Raises:
        ExternalDepsError: with code BAD_MODULE if the file does not parse,
            violates the syntax rules or fails to compile. The diagnostics
            themselves have already been sent to `event_handler`.
    """
    if semantics is None:
        semantics = CompilerSettings()
    file_kind = semantics.file_kind
    debug_log(f"Parsing {module_file.location} for {module_key}")
    file = parse_file(module_file.text, module_file.location)
    if not file.ok:
        if event_handler is not None:
            replay_events_on(event_handler, file.errors)
        raise ExternalDepsError.with_message(
            FailureCode.BAD_MODULE, f"error parsing {file_kind} file for %s", module_key)
    try:
        import_statements = check_module_file_syntax(file, semantics.where)
        debug_log(f"Found {len(import_statements)} module_import directive(s)")
        predeclared_env = Module.with_predeclared(semantics, toplevels)
        program = Program.compile_file(file, predeclared_env)
    except SyntaxErrors as e:
        if event_handler is not None:
            replay_events_on(event_handler, e.errors)
        raise ExternalDepsError.with_message(
            FailureCode.BAD_MODULE, f"syntax error in {file_kind} file for %s", module_key) from e
    debug_log(f"Compiled {module_file.location}: globals {program.globals}")
    return CompiledModuleFile(
        module_file=module_file,
        program=program,
        predeclared_env=predeclared_env,
        import_statements=tuple(import_statements),
    )
