"""Error types for import, editing and row addressing."""

from __future__ import annotations


class InvoiceGridError(Exception):
    """Base class for all invoicegrid errors."""


class ImportFailedError(InvoiceGridError):
    """An uploaded grid could not be turned into rows.

    Import is all-or-nothing: whenever this is raised, no rows were produced.
    """


class HeaderNotFoundError(ImportFailedError):
    """No row in the grid starts with the header marker.

    Attributes:
        marker: The header marker that was searched for.
    """

    def __init__(self, marker: str) -> None:
        self.marker = marker
        super().__init__(f"Could not find header row with {marker!r}")


class EmptySourceError(ImportFailedError):
    """The uploaded grid has no rows at all."""

    def __init__(self, message: str = "Uploaded file is empty") -> None:
        super().__init__(message)


class UnsupportedFileError(ImportFailedError):
    """The file extension has no decoder."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(
            f"Unsupported file type: {filename!r}. Use .xlsx, .xlsm or .csv"
        )


class UnreadableFileError(ImportFailedError):
    """The decoder failed on the file contents."""

    def __init__(self, filename: str, reason: str) -> None:
        self.filename = filename
        self.reason = reason
        super().__init__(f"Could not read {filename!r}: {reason}")


class InvalidRowIndexError(InvoiceGridError, IndexError):
    """Row index outside ``[0, length)``.

    Attributes:
        index: The rejected index.
        length: Number of rows at the time of the call.
    """

    def __init__(self, index: int, length: int) -> None:
        self.index = index
        self.length = length
        super().__init__(f"Row index {index} out of range [0, {length})")


class EditBlockedError(InvoiceGridError):
    """Write attempted on a calculated or read-only column."""

    def __init__(self, column: str) -> None:
        self.column = column
        super().__init__(f"Column {column!r} is calculated and cannot be edited")


class UnknownColumnError(InvoiceGridError, KeyError):
    """Column key is not part of the row schema."""

    def __init__(self, column: str) -> None:
        self.column = column
        super().__init__(f"Unknown column: {column!r}")

    def __str__(self) -> str:
        return self.args[0]
