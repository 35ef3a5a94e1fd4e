"""
Error types for the module file compiler.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class Location(BaseModel):
    """A 1-based line and column in a named file."""
    model_config = ConfigDict(frozen=True)

    file: str
    line: int
    column: int

    @classmethod
    def from_file_line_column(cls, file, line, column):
        return cls(file=file, line=line, column=column)

    def __str__(self):
        return f"{self.file}:{self.line}:{self.column}"


class SyntaxIssue(BaseModel):
    """A positioned syntax error, as found by the parser, the checker or the resolver."""
    model_config = ConfigDict(frozen=True)

    location: Location
    message: str

    def __str__(self):
        return f"{self.location}: {self.message}"


class SyntaxErrors(Exception):
    """Raised when a file fails syntax checking or compilation. Carries every error found."""

    def __init__(self, errors: List[SyntaxIssue]):
        self.errors = list(errors)
        super().__init__(self._format_error())

    def _format_error(self):
        return "\n".join(str(error) for error in self.errors)


class FailureCode(str, Enum):
    """Categorizes failures surfaced at the compile boundary."""
    BAD_MODULE = "BAD_MODULE"


class ExternalDepsError(Exception):
    """A module file could not be turned into a compiled artifact."""

    def __init__(self, code: FailureCode, message: str):
        self.code = code
        self.message = message
        super().__init__(message)

    @classmethod
    def with_message(cls, code, fmt, *args):
        return cls(code, fmt % args)


class EvalError(Exception):
    """An error raised while executing a compiled program."""

    def __init__(self, message: str, location: Optional[Location] = None):
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self):
        if self.location is None:
            return self.message
        return f"{self.location}: {self.message}"


def get_line_context(source_code, line_number):
    """Extract the line of code from source by line number (1-based)."""
    if not source_code or line_number is None:
        return None
    source_lines = source_code.split('\n')
    if 0 < line_number <= len(source_lines):
        return source_lines[line_number - 1].strip()
    return None
