"""
Recording binding tables.

A module file does nothing on its own: it calls predeclared functions such
as `bazel_dep(...)`. `CallRecorder` builds a predeclared table in which each
of those functions only records its call, so a file can be run and its
effect inspected without a real build system behind it.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from modfile.errors import Location


class ToplevelCall(BaseModel):
    """One recorded call of a predeclared function."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    args: List[Any] = []
    kwargs: Dict[str, Any] = {}
    location: Optional[Location] = None


class RecordedValue:
    """
    The result of a recorded call. Its attributes are recording functions
    too, so `ext = use_extension(...)` followed by `ext.tag(...)` records
    `use_extension` then `use_extension.tag`.
    """

    def __init__(self, recorder, name, index):
        self._recorder = recorder
        self._name = name
        self._index = index

    def __getattr__(self, attr):
        if attr.startswith("_"):
            raise AttributeError(attr)
        return self._recorder.function(f"{self._name}.{attr}")

    def __str__(self):
        return f"<{self._name}#{self._index}>"

    __repr__ = __str__


class CallRecorder:
    """
    Collects calls made through the functions it hands out.

    Args:
        thread: Optional ModuleThread, used to attach the source location of each call.
    """

    def __init__(self, thread=None):
        self.thread = thread
        self.calls = []

    def function(self, name):
        def record(*args, **kwargs):
            location = self.thread.current_location() if self.thread is not None else None
            self.calls.append(ToplevelCall(name=name, args=list(args), kwargs=kwargs, location=location))
            return RecordedValue(self, name, len(self.calls) - 1)

        record.__name__ = name
        return record

    def toplevels(self, names):
        """A predeclared table binding each of `names` to a recording function."""
        return {name: self.function(name) for name in names}
