from collections.abc import Sequence
from typing import Any, Protocol

from openpyxl.worksheet.worksheet import Worksheet

from .spec import SpecCellFormat, SpecDataRange
from .workbook import apply_cell_format


class ExportAddon(Protocol):
    """
    Caller-supplied styling hook, run after every other styling step.

    Coordinate semantics
    --------------------
    ``row_idx`` and ``col_idx`` are 0-based coordinates within the *data region*
    (header row excluded), not the worksheet grid.
    """

    def create_cell_format_override(
        self,
        *,
        row_idx: int,
        col_idx: int,
        value: Any,
    ) -> SpecCellFormat | None:
        """
        Return a per-cell SpecCellFormat patch, or None to leave the cell alone.

        Merge contract:
        - If multiple addons return a patch for the same cell, later addons are
          merged on top of earlier ones (non-None fields win).
        """
        return None


def derive_cell_format(
    addons: Sequence[ExportAddon],
    *,
    row_idx: int,
    col_idx: int,
    value: Any,
    fmt_base: SpecCellFormat | None = None,
) -> SpecCellFormat:
    fmt_cell = SpecCellFormat() if fmt_base is None else fmt_base
    for ad in addons:
        cfg_override = ad.create_cell_format_override(
            row_idx=row_idx,
            col_idx=col_idx,
            value=value,
        )
        if cfg_override is not None:
            fmt_cell = fmt_cell.merge(cfg_override)
    return fmt_cell


def apply_addons(
    ws: Worksheet, addons: Sequence[ExportAddon], data_range: SpecDataRange
) -> int:
    """Style every data cell of ``data_range``; returns the number of patched cells."""
    n_patched = 0
    for _row_idx, _row in enumerate(
        ws.iter_rows(
            min_row=data_range.row_data_start,
            max_row=data_range.row_end,
            min_col=data_range.col_start,
            max_col=data_range.col_end,
        )
    ):
        for _col_idx, _cell in enumerate(_row):
            fmt_cell = derive_cell_format(
                addons, row_idx=_row_idx, col_idx=_col_idx, value=_cell.value
            )
            if not fmt_cell.is_empty():
                apply_cell_format(_cell, fmt_cell)
                n_patched += 1
    return n_patched
