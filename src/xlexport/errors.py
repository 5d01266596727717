"""Exception types raised by :func:`xlexport.export`.

Only fatal conditions are exceptions. Degraded post-processing steps are
reported through :class:`xlexport.spec.SpecExportReport.warnings` instead.
"""

from pathlib import Path


class ExportError(Exception):
    """Base class for every fatal export failure."""


class ExportConfigurationConflict(ExportError, ValueError):
    """Options that cannot be honoured together, detected before any write."""


class ExportWriteError(ExportError):
    """A cell could not be written to the underlying worksheet."""

    def __init__(
        self,
        *,
        sheet_name: str,
        path: Path | None,
        field_name: str | None,
        row: int,
        col: int,
        cause: BaseException,
    ):
        self.sheet_name = sheet_name
        self.path = path
        self.field_name = field_name
        self.row = row
        self.col = col
        c_field = f" field {field_name!r}" if field_name is not None else ""
        c_path = str(path) if path is not None else "<in-memory workbook>"
        super().__init__(
            f"Failed to write{c_field} at row {row}, column {col} of worksheet "
            f"{sheet_name!r} in {c_path}: {cause}"
        )


class ExportPasswordError(ExportError):
    """Protection could not be applied; the workbook is not saved."""
