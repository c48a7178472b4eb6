from typing import Optional


class DatalabError(Exception):
    """Base exception for all datalab errors."""
    pass


class UnsupportedFormatError(DatalabError):
    """File extension or declared format is not one we can read or write."""
    pass


class ParseError(DatalabError):
    """
    Malformed dataset content.

    Carries the 1-based line (and column, when known) where parsing failed.
    """

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.line = line
        self.column = column
        super().__init__(f"{message} ({self.location})" if self.location else message)

    @property
    def location(self) -> str:
        if self.line is None:
            return ""
        if self.column is None:
            return f"line {self.line}"
        return f"line {self.line}, column {self.column}"


class IoError(DatalabError):
    """Reading or writing a file failed."""
    pass


class ValidationError(DatalabError):
    """Invalid filter/distill configuration or request argument."""
    pass


class TaskBusyError(DatalabError):
    """Another task is already running."""
    pass


class NotFoundError(DatalabError):
    """Record id out of range or no dataset loaded."""
    pass


class TaskCancelled(Exception):
    """
    Raised when a running task honours a cancellation request.

    Not a DatalabError: cancellation is a terminal state, not a failure.
    """
    pass
