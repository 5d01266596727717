"""
Thin adapter over :mod:`openpyxl`: everything the exporter needs from the file
format lives here (open/save/close, worksheets, cell values and styles).
"""

import os
from copy import copy
from pathlib import Path
from types import TracebackType
from typing import Any

from loguru import logger
from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import Cell
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.styles.differential import DifferentialStyle
from openpyxl.worksheet.worksheet import Worksheet

from .conf import DICT_COLOR_NAMES
from .spec import (
    EnumCellType,
    SpecCellFormat,
    SpecCellWrite,
    SpecExportReport,
    SpecSheetMove,
)
from .util import sanitize_sheet_name


class XlsxWorkbook:
    """
    An open workbook bound to a destination path.

    The handle can be passed to several :func:`xlexport.export` calls and saved
    once at the end. Used as a context manager it saves on a clean exit and
    only releases (never saves) when an exception escapes the block::

        with open_workbook("report.xlsx") as book:
            export(rows_a, book, worksheet_name="A")
            export(rows_b, book, worksheet_name="B")
    """

    def __init__(self, path: os.PathLike[str] | str, wb: Workbook, *, if_new: bool):
        self.path = Path(path)
        self.wb = wb
        self.if_new = if_new
        self.if_closed = False
        # a fresh openpyxl workbook starts with a placeholder sheet named "Sheet"
        self._placeholder: Worksheet | None = wb.active if if_new else None

    def __enter__(self) -> "XlsxWorkbook":
        return self

    def __exit__(
        self, exc_type: type | None, exc: BaseException | None, tb: TracebackType | None
    ) -> None:
        try:
            if exc_type is None and not self.if_closed:
                self.save()
        finally:
            self.close()

    def save(self, path: os.PathLike[str] | str | None = None) -> Path:
        if self.if_closed:
            raise ValueError(f"Workbook {self.path} is already closed.")
        path_out = self.path if path is None else Path(path)
        path_out.parent.mkdir(parents=True, exist_ok=True)
        self.wb.save(path_out)
        logger.debug(f"Saved workbook: {path_out}")
        return path_out

    def close(self) -> None:
        if self.if_closed:
            return
        self.wb.close()
        self.if_closed = True

    def drop_placeholder(self) -> None:
        ws = self._placeholder
        self._placeholder = None
        if ws is None or ws.title not in self.wb.sheetnames or len(self.wb.worksheets) < 2:
            return
        if ws.max_row == 1 and ws.max_column == 1 and ws["A1"].value is None:
            self.wb.remove(ws)


def open_workbook(path: os.PathLike[str] | str) -> XlsxWorkbook:
    """Open ``path`` when it exists, otherwise start a new workbook for it."""
    path_in = Path(path)
    if path_in.exists():
        return XlsxWorkbook(path_in, load_workbook(path_in), if_new=False)
    return XlsxWorkbook(path_in, Workbook(), if_new=True)


################################################################################
# #region Worksheets
def get_or_create_worksheet(
    book: XlsxWorkbook,
    name: str,
    *,
    clear: bool = False,
    move: SpecSheetMove | None = None,
    report: SpecExportReport | None = None,
) -> Worksheet:
    """
    Return worksheet ``name`` from ``book``, creating it when missing.

    ``clear`` replaces an existing sheet by an empty one at the same position.
    ``move`` repositions the sheet; an unknown reference sheet is reported and
    leaves the order untouched.
    """
    wb = book.wb
    c_name = sanitize_sheet_name(name)
    if c_name != name and report is not None:
        report.warn(f"[{c_name}] Worksheet name {name!r} was sanitized to {c_name!r}.")

    if c_name in wb.sheetnames:
        ws = wb[c_name]
        if clear:
            n_idx = wb.index(ws)
            wb.remove(ws)
            ws = wb.create_sheet(c_name, n_idx)
            logger.debug(f"Cleared worksheet: {c_name}")
    else:
        ws = wb.create_sheet(c_name)
        logger.debug(f"Created worksheet: {c_name}")
    book.drop_placeholder()

    if move is not None:
        move_worksheet(wb, ws, move, report=report)
    return ws


def move_worksheet(
    wb: Workbook,
    ws: Worksheet,
    move: SpecSheetMove,
    *,
    report: SpecExportReport | None = None,
) -> None:
    move.validate()
    n_idx_current = wb.index(ws)
    l_others = [_s for _s in wb.worksheets if _s is not ws]

    if move.to_start:
        n_idx_final = 0
    elif move.to_end:
        n_idx_final = len(l_others)
    else:
        c_ref = move.before if move.before is not None else move.after
        l_other_names = [_s.title for _s in l_others]
        if c_ref not in l_other_names:
            c_msg = f"[{ws.title}] Cannot move worksheet relative to missing sheet {c_ref!r}."
            logger.warning(c_msg)
            if report is not None:
                report.warn(c_msg)
            return
        n_idx_final = l_other_names.index(c_ref) + (0 if move.before is not None else 1)

    if n_idx_final != n_idx_current:
        wb.move_sheet(ws, offset=n_idx_final - n_idx_current)


def check_sheet_has_values(ws: Worksheet) -> bool:
    return any(
        _v is not None for _row in ws.iter_rows(values_only=True) for _v in _row
    )


def data_dimension(ws: Worksheet) -> tuple[int, int, int, int] | None:
    """``(min_row, min_col, max_row, max_col)`` of the used area, ``None`` if empty."""
    if not check_sheet_has_values(ws):
        return None
    return ws.min_row, ws.min_column, ws.max_row, ws.max_column


# #endregion
################################################################################
# #region Cells
def normalize_color(color: str) -> str:
    c_color = str(color).strip()
    c_named = DICT_COLOR_NAMES.get(c_color.lower().replace(" ", ""))
    if c_named is not None:
        return c_named
    return c_color.lstrip("#").upper()


def apply_cell_format(cell: Cell, fmt: SpecCellFormat | None) -> None:
    """Patch ``cell``'s style with the non-None parts of ``fmt``."""
    if fmt is None or fmt.is_empty():
        return

    if any(
        _v is not None
        for _v in (
            fmt.font_name,
            fmt.font_size,
            fmt.bold,
            fmt.italic,
            fmt.underline,
            fmt.font_color,
        )
    ):
        font: Font = copy(cell.font)
        if fmt.font_name is not None:
            font.name = fmt.font_name
        if fmt.font_size is not None:
            font.sz = fmt.font_size
        if fmt.bold is not None:
            font.b = fmt.bold
        if fmt.italic is not None:
            font.i = fmt.italic
        if fmt.underline is not None:
            font.u = fmt.underline
        if fmt.font_color is not None:
            font.color = normalize_color(fmt.font_color)
        cell.font = font

    if fmt.bg_color is not None:
        c_color = normalize_color(fmt.bg_color)
        cell.fill = PatternFill(fill_type="solid", start_color=c_color, end_color=c_color)

    if fmt.align is not None or fmt.valign is not None or fmt.text_wrap is not None:
        alignment: Alignment = copy(cell.alignment)
        if fmt.align is not None:
            alignment.horizontal = fmt.align
        if fmt.valign is not None:
            alignment.vertical = fmt.valign
        if fmt.text_wrap is not None:
            alignment.wrap_text = fmt.text_wrap
        cell.alignment = alignment

    if fmt.border is not None:
        side = Side(style=fmt.border)
        cell.border = Border(left=side, right=side, top=side, bottom=side)

    if fmt.num_format is not None:
        cell.number_format = fmt.num_format


def create_differential_style(fmt: SpecCellFormat) -> DifferentialStyle:
    """The conditional-format flavour of :func:`apply_cell_format`."""
    font = None
    if any(_v is not None for _v in (fmt.bold, fmt.italic, fmt.underline, fmt.font_color)):
        font = Font(
            b=fmt.bold,
            i=fmt.italic,
            u=fmt.underline,
            color=None if fmt.font_color is None else normalize_color(fmt.font_color),
        )
    fill = None
    if fmt.bg_color is not None:
        c_color = normalize_color(fmt.bg_color)
        fill = PatternFill(fill_type="solid", start_color=c_color, end_color=c_color, bgColor=c_color)
    border = None
    if fmt.border is not None:
        side = Side(style=fmt.border)
        border = Border(left=side, right=side, top=side, bottom=side)
    return DifferentialStyle(font=font, fill=fill, border=border)


def write_cell(ws: Worksheet, row: int, col: int, cell_write: SpecCellWrite) -> Cell:
    """
    Store one coerced value. Only the addressed cell is touched.

    Text that starts with ``=`` is pinned to the string type so it is never
    read as a formula.
    """
    cell = ws.cell(row=row, column=col)
    value: Any = cell_write.value
    cell.value = value
    if cell_write.cell_type is EnumCellType.TEXT and isinstance(value, str):
        cell.data_type = "s"
    if cell_write.hyperlink is not None:
        cell.hyperlink = cell_write.hyperlink
    if cell_write.num_format is not None:
        cell.number_format = cell_write.num_format
    apply_cell_format(cell, cell_write.fmt)
    return cell


# #endregion
################################################################################
