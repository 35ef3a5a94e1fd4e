# modfile - Module File Compiler
"""
Components of the module file compiler:
- grammar: Lark grammar for the Starlark dialect of module files
- syntax: Syntax tree nodes and the parser that builds them
- checker: Module file syntax rules and `module_import` extraction
- program: Resolution and compilation into an executable Program
- eval: Execution environment, threads and builtins
- compiler: parse -> check -> compile into a CompiledModuleFile
"""

from .errors import EvalError, ExternalDepsError, FailureCode, Location, SyntaxErrors, SyntaxIssue
from .events import Event, EventHandler, PrintingEventHandler, StoredEventHandler
from .syntax import parse_file
from .checker import ModuleImportStatement, check_module_file_syntax
from .eval import Module, ModuleThread
from .program import Program
from .config import CompilerSettings, load_settings
from .compiler import CompiledModuleFile, ModuleFile, ModuleKey, parse_and_compile

__all__ = [
    'CompiledModuleFile',
    'CompilerSettings',
    'EvalError',
    'Event',
    'EventHandler',
    'ExternalDepsError',
    'FailureCode',
    'Location',
    'Module',
    'ModuleFile',
    'ModuleImportStatement',
    'ModuleKey',
    'ModuleThread',
    'PrintingEventHandler',
    'Program',
    'StoredEventHandler',
    'SyntaxErrors',
    'SyntaxIssue',
    'check_module_file_syntax',
    'load_settings',
    'parse_and_compile',
    'parse_file',
]
