"""
Streaming layout: a per-call cursor plus the row emitter that drives coercion.

One :class:`RowEmitter` serves exactly one export call. It owns the cursor and
the resolved header; nothing here is shared between calls.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from openpyxl.worksheet.worksheet import Worksheet

from .coercion import coerce_value
from .errors import ExportWriteError
from .header import read_header_row, resolve_header
from .spec import (
    EnumCellType,
    SpecCellWrite,
    SpecCoercionContext,
    SpecDataRange,
    SpecExportOptions,
    SpecExportReport,
)
from .util import get_record_value, is_scalar_record
from .workbook import apply_cell_format, data_dimension, write_cell


@dataclass(slots=True)
class LayoutCursor:
    """Mutable 1-based write position."""

    row: int
    col: int
    row_start: int
    col_start: int

    def advance_row(self) -> None:
        self.row += 1
        self.col = self.col_start


class RowEmitter:
    """
    Write records one at a time in input order.

    - scalars land in the start column, one per row, without a header
    - the first structured record fixes the header (unless it came from an
      existing sheet in append mode) and writes it unless suppressed
    - every structured record is projected onto the header: missing fields are
      written empty, extra fields are ignored
    """

    def __init__(
        self,
        ws: Worksheet,
        *,
        options: SpecExportOptions,
        context: SpecCoercionContext,
        report: SpecExportReport,
        path: Path | None = None,
    ):
        self.ws = ws
        self.options = options
        self.context = context
        self.report = report
        self.path = path

        self.header: tuple[str, ...] | None = None
        self.if_header_written = False
        self.if_appending = False
        self.row_range_start: int | None = None
        self.col_end: int | None = None
        self.n_rows_written = 0
        self.if_range_has_header = False

        self.cursor = LayoutCursor(
            row=options.start_row,
            col=options.start_column,
            row_start=options.start_row,
            col_start=options.start_column,
        )
        self._prepare()

    ############################################################################
    # #region Setup
    def _prepare(self) -> None:
        dimension = data_dimension(self.ws) if self.options.append else None
        if dimension is not None:
            self._continue_existing(dimension)
            return
        if self.options.title:
            self._write_title()

    def _continue_existing(self, dimension: tuple[int, int, int, int]) -> None:
        n_min_row, n_min_col, n_max_row, n_max_col = dimension
        n_header_row = max(self.options.start_row, n_min_row)
        self.header = read_header_row(
            self.ws, row=n_header_row, col_start=n_min_col, col_end=n_max_col
        )
        self.if_header_written = True
        self.if_appending = True
        self.row_range_start = n_header_row
        self.if_range_has_header = bool(self.header)
        self.cursor = LayoutCursor(
            row=n_max_row + 1,
            col=n_min_col,
            row_start=n_header_row,
            col_start=n_min_col,
        )
        if self.header:
            self.col_end = n_min_col + len(self.header) - 1
        if len(self.header) == 1 and n_header_row < n_max_row and any(
            _cell.value is not None
            for _cell in self.ws[n_header_row + 1][n_min_col : n_max_col]
        ):
            self.report.warn(
                f"[{self.ws.title}] Append header row {n_header_row} has a single field "
                f"{self.header[0]!r} but the row below is wider; a title row may be "
                f"read as the header (set start_row to the header row)."
            )
        if self.options.title:
            self.report.warn(
                f"[{self.ws.title}] Title is ignored when appending to existing data."
            )
        logger.debug(
            f"[{self.ws.title}] Appending below row {n_max_row} "
            f"with existing header {list(self.header)}"
        )

    def _write_title(self) -> None:
        cell = self.ws.cell(row=self.cursor.row, column=self.cursor.col_start)
        cell.value = self.options.title
        cell.data_type = "s"
        apply_cell_format(cell, self.options.title_format)
        self.cursor.advance_row()
        self.cursor.row_start = self.cursor.row

    # #endregion
    ############################################################################
    # #region Emit
    def emit(self, record: Any) -> None:
        if is_scalar_record(record):
            self._emit_scalar(record)
        else:
            self._emit_record(record)
        self.n_rows_written += 1

    def _emit_scalar(self, value: Any) -> None:
        self._mark_range_start()
        self._write(value, None, self.cursor.row, self.cursor.col_start)
        self._extend_col_end(self.cursor.col_start)
        self.cursor.advance_row()

    def _emit_record(self, record: Any) -> None:
        if self.header is None:
            self.header = resolve_header(
                record,
                exclude=self.options.exclude_fields,
                display_fields_only=self.options.display_fields_only,
                no_derived_fields=self.options.no_derived_fields,
            )
            if self.header:
                self._extend_col_end(self.cursor.col_start + len(self.header) - 1)
        if not self.if_header_written:
            self._write_header()
        self._mark_range_start()

        for _idx, _name in enumerate(self.header):
            self._write(
                get_record_value(record, _name),
                _name,
                self.cursor.row,
                self.cursor.col_start + _idx,
            )
        self.cursor.advance_row()

    def _write_header(self) -> None:
        self.if_header_written = True
        if self.options.no_header:
            return
        self._mark_range_start(if_header=True)
        for _idx, _name in enumerate(self.header or ()):
            self._write_raw(
                SpecCellWrite(value=str(_name), cell_type=EnumCellType.TEXT),
                _name,
                self.cursor.row,
                self.cursor.col_start + _idx,
            )
        self.cursor.advance_row()

    def _write(self, value: Any, field_name: str | None, row: int, col: int) -> None:
        try:
            cell_write = coerce_value(value, field_name, self.context)
        except Exception as exc:
            raise self._write_error(field_name, row, col, exc) from exc
        self._write_raw(cell_write, field_name, row, col)

    def _write_raw(
        self, cell_write: SpecCellWrite, field_name: str | None, row: int, col: int
    ) -> None:
        try:
            write_cell(self.ws, row, col, cell_write)
        except Exception as exc:
            raise self._write_error(field_name, row, col, exc) from exc

    def _write_error(
        self, field_name: str | None, row: int, col: int, exc: Exception
    ) -> ExportWriteError:
        return ExportWriteError(
            sheet_name=self.ws.title,
            path=self.path,
            field_name=field_name,
            row=row,
            col=col,
            cause=exc,
        )

    # #endregion
    ############################################################################
    # #region Range
    def _mark_range_start(self, *, if_header: bool = False) -> None:
        if self.row_range_start is None:
            self.row_range_start = self.cursor.row
            self.if_range_has_header = if_header

    def _extend_col_end(self, col: int) -> None:
        self.col_end = col if self.col_end is None else max(self.col_end, col)

    def finish(self) -> SpecDataRange | None:
        """
        Occupied range of this export: header (or first data row) through the
        last written row. The title row is never part of it.
        """
        n_row_end = self.cursor.row - 1
        if self.row_range_start is None or n_row_end < self.row_range_start:
            return None
        return SpecDataRange(
            row_start=self.row_range_start,
            col_start=self.cursor.col_start,
            row_end=n_row_end,
            col_end=self.col_end if self.col_end is not None else self.cursor.col_start,
            if_has_header=self.if_range_has_header,
        )

    # #endregion
    ############################################################################
