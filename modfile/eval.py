"""
Evaluation of compiled module file programs.

A `Program` is plain Python bytecode. It runs with an empty `__builtins__`
and a globals dict built from the universe, the module's predeclared
environment and two internal hooks: the cancellation check and the `load`
function. Anything user code raises is reported as an `EvalError` located
through the program's line table.
"""
import sys
import threading
from types import MappingProxyType

from modfile.errors import EvalError

TICK = "__modfile_tick__"
LOAD = "__modfile_load__"


class Module:
    """
    The environment a program runs in: a read-only predeclared table plus
    the file's globals, which are filled in by execution.
    """

    def __init__(self, semantics, predeclared):
        self.semantics = semantics
        self.predeclared = predeclared
        self._globals = {}

    @classmethod
    def with_predeclared(cls, semantics, predeclared):
        """Create a module over a private, read-only copy of `predeclared`."""
        return cls(semantics, MappingProxyType(dict(predeclared or {})))

    @property
    def globals(self):
        return MappingProxyType(self._globals)

    def __repr__(self):
        return f"<Module predeclared={sorted(self.predeclared)}>"


def default_print_handler(location, message):
    where = f" {location}" if location is not None else ""
    print(f"DEBUG{where}: {message}", file=sys.stderr)


class ModuleThread:
    """
    Interpreter context for one execution.

    Args:
        semantics: The CompilerSettings in effect.
        print_handler: Called as `handler(location, message)` for each `print`.
        loader: Called as `loader(module_name)` for each `load`; must return a mapping.
    """

    def __init__(self, semantics=None, print_handler=None, loader=None):
        self.semantics = semantics
        self.print_handler = print_handler or default_print_handler
        self.loader = loader
        self._cancelled = threading.Event()
        self._loaded = {}
        self._program = None

    def cancel(self):
        """Ask the running program to stop at its next statement or loop iteration."""
        self._cancelled.set()

    @property
    def cancelled(self):
        return self._cancelled.is_set()

    def check_cancelled(self):
        if self._cancelled.is_set():
            raise InterruptedError("module file evaluation was cancelled")

    def load(self, module_name, symbol):
        if self.loader is None:
            raise EvalError(f"cannot load '{module_name}': no loader is configured")
        if module_name not in self._loaded:
            self._loaded[module_name] = self.loader(module_name)
        bindings = self._loaded[module_name]
        if symbol not in bindings:
            raise EvalError(f"file '{module_name}' does not contain symbol '{symbol}'")
        return bindings[symbol]

    def current_location(self):
        """The source location of the innermost program frame on the stack, if any."""
        program = self._program
        if program is None:
            return None
        frame = sys._getframe(1)
        while frame is not None:
            if frame.f_code.co_filename == program.filename:
                return program.location_for_frame(frame)
            frame = frame.f_back
        return None

    def emit_print(self, message):
        self.print_handler(self.current_location(), message)

    def _enter(self, program):
        if self._program is not None:
            raise EvalError("thread is already executing a program")
        self._program = program

    def _exit(self):
        self._program = None


# --- Universe ---

_TYPE_NAMES = {
    type(None): "NoneType",
    bool: "bool",
    int: "int",
    float: "float",
    str: "string",
    list: "list",
    tuple: "tuple",
    dict: "dict",
    range: "range",
}


def type_name(value):
    name = _TYPE_NAMES.get(type(value))
    if name is not None:
        return name
    if callable(value):
        return "function"
    return type(value).__name__


def _fail(*args, sep=" "):
    raise EvalError("Error in fail: " + sep.join(str(arg) for arg in args))


def _hash(value):
    if not isinstance(value, str):
        raise EvalError(f"hash: got value of type '{type_name(value)}', want 'string'")
    h = 0
    for ch in value:
        h = (31 * h + ord(ch)) & 0xFFFFFFFF
    return h - (1 << 32) if h >= 1 << 31 else h


def _dir(value):
    return sorted(name for name in dir(value) if not name.startswith("_"))


def _getattr(value, name, *default):
    if name.startswith("_"):
        if default:
            return default[0]
        raise EvalError(f"'{type_name(value)}' value has no field or method '{name}'")
    return getattr(value, name, *default)


def _hasattr(value, name):
    return not name.startswith("_") and hasattr(value, name)


def _sorted(iterable, key=None, reverse=False):
    return sorted(iterable, key=key, reverse=reverse)


def _reversed(sequence):
    return list(reversed(list(sequence)))


def _enumerate(iterable, start=0):
    return list(enumerate(iterable, start))


def _zip(*iterables):
    return list(zip(*iterables))


def universe(thread):
    """Builtins visible to every program. `print` is bound to `thread`."""

    def _print(*args, sep=" "):
        thread.emit_print(sep.join(str(arg) for arg in args))

    return {
        "None": None,
        "True": True,
        "False": False,
        "abs": abs,
        "all": all,
        "any": any,
        "bool": bool,
        "dict": dict,
        "dir": _dir,
        "enumerate": _enumerate,
        "fail": _fail,
        "float": float,
        "getattr": _getattr,
        "hasattr": _hasattr,
        "hash": _hash,
        "int": int,
        "len": len,
        "list": list,
        "max": max,
        "min": min,
        "print": _print,
        "range": range,
        "repr": repr,
        "reversed": _reversed,
        "sorted": _sorted,
        "str": str,
        "tuple": tuple,
        "type": type_name,
        "zip": _zip,
    }


UNIVERSE_NAMES = frozenset(universe(None))


def _describe(error):
    if isinstance(error, KeyError):
        return f"key {error.args[0]!r} not found in dictionary" if error.args else "key not found"
    if isinstance(error, ZeroDivisionError):
        return "division by zero"
    if isinstance(error, RecursionError):
        return "function called recursively"
    message = str(error)
    return message or type(error).__name__


def exec_file_program(program, module, thread):
    """
    Execute `program` in `module` on `thread`.

    The file's globals are published to `module.globals` even if execution
    fails part way through.

    Raises:
        EvalError: for any error raised by the program, located in the source file.
        InterruptedError: if the thread was cancelled.
    """
    env = universe(thread)
    env.update(module.predeclared)
    env.update({"__builtins__": {}, TICK: thread.check_cancelled, LOAD: thread.load})
    thread._enter(program)
    try:
        exec(program.code, env)
    except InterruptedError:
        raise
    except EvalError as e:
        if e.location is None:
            e.location = program.location_for_traceback(e.__traceback__)
        raise
    except Exception as e:
        raise EvalError(_describe(e), program.location_for_traceback(e.__traceback__)) from e
    finally:
        thread._exit()
        module._globals.update({name: env[name] for name in program.globals if name in env})
