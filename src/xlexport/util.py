import numbers
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import is_dataclass
from datetime import date, time, timedelta
from typing import Any

import polars as pl
from openpyxl.utils.cell import quote_sheetname, range_boundaries

from .conf import (
    N_LEN_EXCEL_SHEET_NAME_MAX,
    RE_NAME_ILLEGAL_CHARS,
    RE_NAME_LIKE_CELL_REF,
    TUP_EXCEL_ILLEGAL,
)
from .spec import SpecExportReport

_TUP_SCALAR_TYPES = (str, bytes, numbers.Number, date, time, timedelta)

################################################################################
# #region Names


def sanitize_sheet_name(name: str, *, replace_to: str = "_") -> str:
    for ch in TUP_EXCEL_ILLEGAL:
        name = name.replace(ch, replace_to)
    name = name.strip().strip("'") or "Sheet"
    return name[:N_LEN_EXCEL_SHEET_NAME_MAX]


def sanitize_artifact_name(
    name: str, *, kind: str, report: SpecExportReport | None = None
) -> str:
    """
    Make ``name`` acceptable as a defined-name/table identifier.

    Illegal characters become ``_``; names that start with a digit or read like
    a cell reference (``AB12``) get a ``_`` prefix. Any change is reported.
    """
    c_name = RE_NAME_ILLEGAL_CHARS.sub("_", str(name).strip()) or "_"
    if c_name[0].isdigit() or RE_NAME_LIKE_CELL_REF.fullmatch(c_name):
        c_name = f"_{c_name}"
    if c_name != name and report is not None:
        report.warn(
            f"[{report.sheet_name}] {kind} name {name!r} contains characters that "
            f"are not allowed; using {c_name!r}."
        )
    return c_name


def create_sheet_ref(sheet_name: str, address: str) -> str:
    return f"{quote_sheetname(sheet_name)}!{address}"


def split_sheet_ref(ref: str) -> tuple[str | None, str]:
    """``"'My Sheet'!A1:B2"`` -> ``("My Sheet", "A1:B2")``; bare refs keep ``None``."""
    if "!" not in ref:
        return None, ref.replace("$", "")
    c_sheet, c_address = ref.rsplit("!", 1)
    if c_sheet.startswith("'") and c_sheet.endswith("'"):
        c_sheet = c_sheet[1:-1].replace("''", "'")
    return c_sheet, c_address.replace("$", "")


def parse_range_bounds(address: str) -> tuple[int, int, int, int]:
    """A1 range -> ``(min_row, min_col, max_row, max_col)``, all 1-based."""
    n_min_col, n_min_row, n_max_col, n_max_row = range_boundaries(address)
    if None in (n_min_col, n_min_row, n_max_col, n_max_row):
        raise ValueError(f"Range {address!r} must have explicit rows and columns.")
    return n_min_row, n_min_col, n_max_row, n_max_col  # type: ignore[return-value]


# #endregion
################################################################################
# #region Records


def is_scalar_record(record: Any) -> bool:
    if record is None or isinstance(record, _TUP_SCALAR_TYPES):
        return True
    if isinstance(record, Mapping) or is_dataclass(record):
        return False
    if isinstance(record, tuple) and hasattr(record, "_fields"):
        return False
    return not hasattr(record, "__dict__")


def generate_records(data: Any) -> Iterator[Any]:
    """
    Stream records out of whatever the caller handed over.

    polars frames yield one mapping per row; a single mapping or scalar is a
    one-record stream; strings are never iterated character by character.
    """
    if isinstance(data, pl.LazyFrame):
        data = data.collect()
    if isinstance(data, pl.DataFrame):
        yield from data.iter_rows(named=True)
        return
    if isinstance(data, pl.Series):
        yield from data
        return
    if isinstance(data, (str, bytes, Mapping)) or not isinstance(data, Iterable):
        yield data
        return
    yield from data


def get_record_value(record: Any, field_name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(field_name)
    try:
        return getattr(record, field_name)
    except Exception:
        # a failing derived attribute yields an empty cell, not an aborted export
        return None


# #endregion
################################################################################
# #region Autofit


def estimate_width_len(value: Any, *, num_format: str | None = None) -> int:
    """Estimate display string length for column width calculation.

    Notes
    -----
    - Excel column width is not strictly character count; this is a pragmatic
      heuristic good enough for most reports.
    - Wide (CJK) characters count as 1.6 narrow ones.
    """
    if value is None:
        return 0
    if isinstance(value, float) and num_format in (None, "General"):
        s = f"{value:.10g}"
    elif isinstance(value, (date, time)):
        s = "00/00/00 00:00"
    else:
        s = str(value)
    n_ascii = sum(1 for _chr in s if ord(_chr) < 128)
    n_non_ascii = len(s) - n_ascii
    return n_ascii + int(1.6 * n_non_ascii)


# #endregion
################################################################################
