"""
Diagnostic events and the handlers that receive them.

The compiler never prints diagnostics itself; it replays them as events on
whatever handler the caller supplies.
"""
import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from modfile.errors import Location, get_line_context


class EventKind(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


class Event(BaseModel):
    """A positioned diagnostic for replay to the end user."""
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    message: str
    location: Optional[Location] = None

    @classmethod
    def error(cls, location, message):
        return cls(kind=EventKind.ERROR, message=message, location=location)

    def __str__(self):
        if self.location is None:
            return f"{self.kind.value}: {self.message}"
        return f"{self.kind.value}: {self.location}: {self.message}"


class EventHandler(ABC):
    """Abstract sink for diagnostic events."""

    @abstractmethod
    def handle(self, event: Event) -> None:
        pass


class StoredEventHandler(EventHandler):
    """Keeps every event it receives, in order."""

    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append(event)

    @property
    def has_errors(self):
        return any(event.kind == EventKind.ERROR for event in self.events)

    def replay_on(self, handler):
        for event in self.events:
            handler.handle(event)


class PrintingEventHandler(EventHandler):
    """Writes events to a stream, followed by the offending source line when the source is known."""

    _COLORS = {
        EventKind.ERROR: "\033[91m",
        EventKind.WARNING: "\033[93m",
        EventKind.INFO: "\033[92m",
        EventKind.DEBUG: "\033[94m",
    }

    def __init__(self, stream=None, source=None, color=True):
        self._stream = stream if stream is not None else sys.stderr
        self._source = source
        self._color = color

    def handle(self, event):
        kind = event.kind.value
        if self._color:
            kind = f"{self._COLORS[event.kind]}\033[1m{kind}\033[0m"
        where = f"{event.location}: " if event.location is not None else ""
        print(f"{kind}: {where}{event.message}", file=self._stream)
        if event.location is not None:
            context = get_line_context(self._source, event.location.line)
            if context:
                print(f"   > {context}", file=self._stream)


def replay_events_on(handler, errors):
    """Report each syntax error to `handler` as an ERROR event, verbatim."""
    for error in errors:
        handler.handle(Event.error(error.location, error.message))
