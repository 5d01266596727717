"""
Pivot summaries.

The workbook collaborator cannot author native pivot caches, so a pivot is
rendered as a computed block: :mod:`polars` aggregates the source range, the
result is written at the pivot's address and registered as a table named after
the pivot. Running the same definition again rewrites the block in place and
moves the table ref; cell styles applied by hand survive.
"""

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import polars as pl
from loguru import logger
from openpyxl.chart import Reference, Series
from openpyxl.chart.label import DataLabelList
from openpyxl.utils import get_column_letter
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from .chart import create_chart_object, parse_chart_type, remove_charts_at
from .conf import C_PIVOT_GRAND_TOTAL
from .errors import ExportConfigurationConflict
from .spec import (
    EnumChartType,
    EnumPivotFunction,
    SpecDataRange,
    SpecExportOptions,
    SpecExportReport,
    SpecPivotChart,
    SpecPivotTable,
)
from .util import (
    create_sheet_ref,
    parse_range_bounds,
    sanitize_artifact_name,
    sanitize_sheet_name,
    split_sheet_ref,
)
from .workbook import data_dimension

C_LABEL_BLANK = "(blank)"


################################################################################
# #region Definition
def _as_tuple(value: str | Sequence[str] | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _as_data_mapping(
    data: str | Sequence[str] | Mapping[str, str | EnumPivotFunction] | None,
) -> dict[str, EnumPivotFunction]:
    if data is None:
        return {}
    if isinstance(data, Mapping):
        return {str(_k): EnumPivotFunction.parse(_v) for _k, _v in data.items()}
    return {_f: EnumPivotFunction.SUM for _f in _as_tuple(data)}


def create_pivot_definition(
    name: str,
    *,
    rows: str | Sequence[str] | None = None,
    columns: str | Sequence[str] | None = None,
    data: str | Sequence[str] | Mapping[str, str | EnumPivotFunction] | None = None,
    filters: str | Sequence[str] | None = None,
    source_worksheet: str | None = None,
    source_range: str | None = None,
    target_sheet: str | None = None,
    address: str = "A1",
    include_chart: bool = False,
    chart_type: str | EnumChartType = EnumChartType.PIE,
    chart_title: str | None = None,
    no_legend: bool = False,
    show_category: bool = False,
    show_percent: bool = False,
    no_totals: bool = False,
    table_style: str | None = "TableStyleLight16",
) -> dict[str, SpecPivotTable]:
    """
    Build a named pivot definition for ``SpecExportOptions.pivot_tables``.

    Returns a one-entry mapping so several definitions combine with ``|``::

        pivots = create_pivot_definition("ByRegion", rows="Region", data={"Sales": "sum"})
        pivots |= create_pivot_definition("ByRep", rows="Rep", data="Sales")

    ``data`` given as a field name (or names) aggregates with Sum.
    """
    if not name or not str(name).strip():
        raise ExportConfigurationConflict("Pivot definition needs a non-empty name.")

    pivot = SpecPivotTable(
        rows=_as_tuple(rows),
        columns=_as_tuple(columns),
        data=_as_data_mapping(data),
        filters=_as_tuple(filters),
        source_worksheet=source_worksheet,
        source_range=source_range,
        target_sheet=target_sheet,
        address=address,
        include_chart=include_chart,
        chart=SpecPivotChart(
            chart_type=parse_chart_type(chart_type),
            title=chart_title,
            no_legend=no_legend,
            show_category=show_category,
            show_percent=show_percent,
        ),
        no_totals=no_totals,
        table_style=table_style,
    )
    if not (pivot.rows or pivot.columns or pivot.data):
        raise ExportConfigurationConflict(
            f"Pivot definition {name!r} has no rows, columns or data fields."
        )
    return {name: pivot}


def create_inline_pivot(options: SpecExportOptions, sheet_name: str) -> dict[str, SpecPivotTable]:
    """The single pivot described by the flat ``pivot_*`` options, if any."""
    if not options.if_inline_pivot:
        return {}
    c_name = f"{sheet_name}PivotTable"
    return {
        c_name: SpecPivotTable(
            rows=tuple(options.pivot_rows),
            columns=tuple(options.pivot_columns),
            data=_as_data_mapping(options.pivot_data),
            filters=tuple(options.pivot_filter),
            include_chart=options.include_pivot_chart,
            chart=options.pivot_chart,
        )
    }


# #endregion
################################################################################
# #region Compute
@dataclass(frozen=True, slots=True)
class SpecPivotGrid:
    """A computed pivot block: header labels and value rows, ready to write."""

    header: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...]
    n_row_fields: int
    n_value_columns: int
    if_has_total_row: bool


def create_value_label(field_name: str, func: EnumPivotFunction) -> str:
    return f"{func.value} of {field_name}"


def _create_agg_expr(df: pl.DataFrame, field_name: str, func: EnumPivotFunction) -> pl.Expr:
    col = pl.col(field_name)
    if func is EnumPivotFunction.COUNT:
        return col.count()
    num = col if df.schema[field_name].is_numeric() else col.cast(pl.Float64, strict=False)
    if func is EnumPivotFunction.COUNTNUMS:
        return num.count()
    if func is EnumPivotFunction.SUM:
        return num.sum()
    if func is EnumPivotFunction.AVERAGE:
        return num.mean()
    if func is EnumPivotFunction.MAX:
        return num.max()
    if func is EnumPivotFunction.MIN:
        return num.min()
    if func is EnumPivotFunction.PRODUCT:
        return num.product()
    if func in (EnumPivotFunction.STDDEV, EnumPivotFunction.STDDEVP):
        return num.std(ddof=1 if func is EnumPivotFunction.STDDEV else 0)
    return num.var(ddof=1 if func is EnumPivotFunction.VAR else 0)


def _aggregate(
    df: pl.DataFrame, keys: Sequence[str], exprs: Sequence[pl.Expr]
) -> dict[tuple[Any, ...], dict[str, Any]]:
    if not keys:
        return {(): df.select(exprs).row(0, named=True)}
    df_out = df.group_by(list(keys), maintain_order=True).agg(exprs)
    return {
        tuple(_row[_k] for _k in keys): _row for _row in df_out.iter_rows(named=True)
    }


def _sort_key(key: tuple[Any, ...]) -> tuple[tuple[bool, Any], ...]:
    # blanks sort last, like Excel's "(blank)" item
    return tuple((_v is None, "" if _v is None else _v) for _v in key)


def _label(value: Any) -> Any:
    return C_LABEL_BLANK if value is None else value


def _clean_value(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def compute_pivot_grid(df: pl.DataFrame, pivot: SpecPivotTable) -> SpecPivotGrid:
    """
    Aggregate ``df`` the way ``pivot`` asks.

    Row fields become leading label columns, each column-field item spawns one
    value column per data field. Unless ``no_totals``, a "Grand Total" row (and
    with column fields, grand total columns) aggregate the whole source, not
    the visible subtotals.
    """
    l_rows = list(pivot.rows)
    l_cols = list(pivot.columns)
    dict_funcs = {_f: EnumPivotFunction.parse(_fn) for _f, _fn in pivot.data.items()}
    for _name in (*l_rows, *l_cols, *dict_funcs, *pivot.filters):
        if _name not in df.columns:
            raise ValueError(f"Pivot field {_name!r} is not in the source header {df.columns}.")

    l_exprs = [
        _create_agg_expr(df, _f, _fn).alias(create_value_label(_f, _fn))
        for _f, _fn in dict_funcs.items()
    ]
    if not l_exprs:
        l_exprs = [pl.len().alias("Count")]
    l_value_names = [_e.meta.output_name() for _e in l_exprs]
    if_totals = not pivot.no_totals

    dict_cells = _aggregate(df, l_rows + l_cols, l_exprs)
    dict_row_totals = _aggregate(df, l_rows, l_exprs) if l_cols else {}
    dict_col_totals = _aggregate(df, l_cols, l_exprs) if l_rows else {}
    dict_overall = _aggregate(df, [], l_exprs)[()]

    n_rows = len(l_rows)
    l_row_keys = sorted({_k[:n_rows] for _k in dict_cells}, key=_sort_key)
    l_col_keys = sorted({_k[n_rows:] for _k in dict_cells}, key=_sort_key)

    l_header: list[str] = list(l_rows)
    if l_cols:
        for _ck in l_col_keys:
            for _vn in l_value_names:
                l_parts = [str(_label(_v)) for _v in _ck]
                if len(l_value_names) > 1:
                    l_parts.append(_vn)
                l_header.append(" - ".join(l_parts))
        n_value_columns = len(l_header) - n_rows
        if if_totals:
            l_header += [
                C_PIVOT_GRAND_TOTAL if len(l_value_names) == 1 else f"Total {_vn}"
                for _vn in l_value_names
            ]
    else:
        l_header += l_value_names
        n_value_columns = len(l_value_names)

    l_grid: list[tuple[Any, ...]] = []
    for _rk in l_row_keys:
        l_row: list[Any] = [_label(_v) for _v in _rk]
        if l_cols:
            for _ck in l_col_keys:
                dict_cell = dict_cells.get(_rk + _ck, {})
                l_row += [dict_cell.get(_vn) for _vn in l_value_names]
            if if_totals:
                l_row += [dict_row_totals[_rk][_vn] for _vn in l_value_names]
        else:
            l_row += [dict_cells[_rk][_vn] for _vn in l_value_names]
        l_grid.append(tuple(_clean_value(_v) for _v in l_row))

    if_total_row = if_totals and bool(l_rows)
    if if_total_row:
        l_row = [C_PIVOT_GRAND_TOTAL] + [None] * (n_rows - 1)
        if l_cols:
            for _ck in l_col_keys:
                l_row += [dict_col_totals[_ck][_vn] for _vn in l_value_names]
        l_row += [dict_overall[_vn] for _vn in l_value_names]
        l_grid.append(tuple(_clean_value(_v) for _v in l_row))

    return SpecPivotGrid(
        header=tuple(_dedupe_labels(l_header)),
        rows=tuple(l_grid),
        n_row_fields=n_rows,
        n_value_columns=n_value_columns,
        if_has_total_row=if_total_row,
    )


def _dedupe_labels(labels: Sequence[Any]) -> list[str]:
    # table column names must be unique non-empty strings
    l_out: list[str] = []
    set_seen: set[str] = set()
    for _idx, _label_in in enumerate(labels):
        c_base = str(_label_in) if _label_in not in (None, "") else f"Column{_idx + 1}"
        c_label, n_suffix = c_base, 2
        while c_label.lower() in set_seen:
            c_label = f"{c_base}{n_suffix}"
            n_suffix += 1
        set_seen.add(c_label.lower())
        l_out.append(c_label)
    return l_out


# #endregion
################################################################################
# #region Source
def _resolve_source(
    wb: Workbook,
    ws: Worksheet,
    pivot: SpecPivotTable,
    data_range: SpecDataRange | None,
) -> tuple[Worksheet, tuple[int, int, int, int]]:
    if pivot.source_range is not None:
        c_sheet, c_address = split_sheet_ref(pivot.source_range)
        if c_sheet is None and c_address in wb.defined_names:
            c_sheet, c_address = next(iter(wb.defined_names[c_address].destinations))
            c_address = c_address.replace("$", "")
        ws_src = ws if c_sheet is None else wb[c_sheet]
        return ws_src, parse_range_bounds(c_address)
    if pivot.source_worksheet is not None:
        ws_src = wb[pivot.source_worksheet]
        dimension = data_dimension(ws_src)
        if dimension is None:
            raise ValueError(f"Pivot source worksheet {pivot.source_worksheet!r} is empty.")
        return ws_src, dimension
    if data_range is None:
        raise ValueError("Pivot has no source: nothing was exported and no source was given.")
    if not data_range.if_has_header:
        raise ValueError("Pivot source needs a header row.")
    return ws, (data_range.row_start, data_range.col_start, data_range.row_end, data_range.col_end)


def read_source_frame(
    ws: Worksheet, bounds: tuple[int, int, int, int]
) -> pl.DataFrame:
    """First row of ``bounds`` is the header; the rest become frame rows."""
    n_min_row, n_min_col, n_max_row, n_max_col = bounds
    l_values = [
        list(_row)
        for _row in ws.iter_rows(
            min_row=n_min_row,
            max_row=n_max_row,
            min_col=n_min_col,
            max_col=n_max_col,
            values_only=True,
        )
    ]
    l_header = _dedupe_labels(l_values[0] if l_values else [])
    return pl.DataFrame(
        l_values[1:],
        schema=l_header,
        orient="row",
        strict=False,
        infer_schema_length=None,
    )


# #endregion
################################################################################
# #region Render
def _find_table(wb: Workbook, name: str) -> tuple[Worksheet, Table] | None:
    for _ws in wb.worksheets:
        for _name in _ws.tables:
            if _name.lower() == name.lower():
                return _ws, _ws.tables[_name]
    return None


def _put(ws: Worksheet, row: int, col: int, value: Any) -> None:
    cell = ws.cell(row=row, column=col)
    cell.value = value
    if isinstance(value, str):
        cell.data_type = "s"


def _clear_block(ws: Worksheet, bounds: tuple[int, int, int, int]) -> None:
    n_min_row, n_min_col, n_max_row, n_max_col = bounds
    for _row in ws.iter_rows(
        min_row=n_min_row, max_row=n_max_row, min_col=n_min_col, max_col=n_max_col
    ):
        for _cell in _row:
            _cell.value = None


def render_pivot(
    ws_target: Worksheet,
    name: str,
    pivot: SpecPivotTable,
    grid: SpecPivotGrid,
) -> SpecDataRange:
    """Write ``grid`` at ``pivot.address`` and create or update its table."""
    wb = ws_target.parent
    n_anchor_row, n_anchor_col, _, _ = parse_range_bounds(pivot.address.replace("$", ""))

    found = _find_table(wb, name)
    if found is not None:
        ws_old, table_old = found
        n_min_row, n_min_col, n_max_row, n_max_col = parse_range_bounds(table_old.ref)
        if ws_old is ws_target:
            _clear_block(
                ws_target,
                (
                    min(n_anchor_row, n_min_row),
                    min(n_anchor_col, n_min_col),
                    n_max_row,
                    n_max_col,
                ),
            )
            remove_charts_at(ws_target, {f"{get_column_letter(n_max_col + 2)}{n_min_row}"})
        else:
            raise ValueError(
                f"a table named {name!r} already exists on worksheet {ws_old.title!r}"
            )

    n_row = n_anchor_row
    for _filter in pivot.filters:
        _put(ws_target, n_row, n_anchor_col, _filter)
        _put(ws_target, n_row, n_anchor_col + 1, "(All)")
        n_row += 1
    if pivot.filters:
        n_row += 1

    n_header_row = n_row
    for _idx, _label_out in enumerate(grid.header):
        _put(ws_target, n_header_row, n_anchor_col + _idx, _label_out)
    for _row_idx, _values in enumerate(grid.rows, start=1):
        for _col_idx, _value in enumerate(_values):
            _put(ws_target, n_header_row + _row_idx, n_anchor_col + _col_idx, _value)

    block = SpecDataRange(
        row_start=n_header_row,
        col_start=n_anchor_col,
        # a table needs at least one body row
        row_end=n_header_row + max(1, len(grid.rows)),
        col_end=n_anchor_col + max(1, len(grid.header)) - 1,
    )
    c_ref = block.to_a1()
    if found is not None:
        table = found[1]
        table.ref = c_ref
        if table.autoFilter is not None:
            table.autoFilter.ref = c_ref
        table.tableColumns = []
    else:
        table = Table(displayName=name, ref=c_ref)
        if pivot.table_style:
            table.tableStyleInfo = TableStyleInfo(name=pivot.table_style, showRowStripes=True)
        ws_target.add_table(table)
    return block


def add_pivot_chart(
    ws_target: Worksheet,
    name: str,
    cfg_chart: SpecPivotChart,
    grid: SpecPivotGrid,
    block: SpecDataRange,
) -> str:
    """Chart the pivot's value columns against its first row field; returns the anchor."""
    n_body_end = block.row_end - (1 if grid.if_has_total_row else 0)
    if n_body_end < block.row_data_start:
        raise ValueError("Pivot has no rows to chart.")
    n_first_value_col = block.col_start + grid.n_row_fields

    chart = create_chart_object(cfg_chart.chart_type)
    for _idx in range(grid.n_value_columns):
        chart.series.append(
            Series(
                Reference(
                    ws_target,
                    min_col=n_first_value_col + _idx,
                    min_row=block.row_start,
                    max_row=n_body_end,
                ),
                title_from_data=True,
            )
        )
    if grid.n_row_fields:
        chart.set_categories(
            Reference(
                ws_target,
                min_col=block.col_start,
                min_row=block.row_data_start,
                max_row=n_body_end,
            )
        )
    chart.title = cfg_chart.title or name
    chart.width = cfg_chart.width
    chart.height = cfg_chart.height
    if cfg_chart.no_legend:
        chart.legend = None
    if cfg_chart.show_category or cfg_chart.show_percent:
        chart.dataLabels = DataLabelList(
            showCatName=cfg_chart.show_category or None,
            showPercent=cfg_chart.show_percent or None,
        )

    c_anchor = f"{get_column_letter(block.col_end + 2)}{block.row_start}"
    remove_charts_at(ws_target, {c_anchor})
    ws_target.add_chart(chart, c_anchor)
    return c_anchor


# #endregion
################################################################################
# #region Attach
def add_pivot_tables(
    ws: Worksheet,
    pivots: Mapping[str, SpecPivotTable],
    *,
    data_range: SpecDataRange | None,
    report: SpecExportReport,
) -> int:
    """
    Render every pivot in ``pivots``. Each pivot lands on its ``target_sheet``
    (default: a sheet named after the pivot). A failing pivot is reported and
    the others still run.
    """
    wb = ws.parent
    n_done = 0
    for _name_in, _pivot in pivots.items():
        c_name = sanitize_artifact_name(_name_in, kind="Pivot table", report=report)
        try:
            ws_src, bounds = _resolve_source(wb, ws, _pivot, data_range)
            grid = compute_pivot_grid(read_source_frame(ws_src, bounds), _pivot)

            c_target = sanitize_sheet_name(_pivot.target_sheet or c_name)
            found = _find_table(wb, c_name)
            if found is not None and found[0].title != c_target:
                # checked before the target sheet is created
                raise ValueError(
                    f"a table named {c_name!r} already exists on worksheet {found[0].title!r}"
                )
            ws_target = wb[c_target] if c_target in wb.sheetnames else wb.create_sheet(c_target)
            block = render_pivot(ws_target, c_name, _pivot, grid)
            logger.debug(
                f"[{ws.title}] Pivot {c_name} at {create_sheet_ref(c_target, block.to_a1())}"
            )
            if _pivot.include_chart:
                add_pivot_chart(ws_target, c_name, _pivot.chart, grid, block)
        except Exception as exc:
            c_msg = f"[{ws.title}] Pivot table {c_name!r} skipped: {exc}"
            logger.warning(c_msg)
            report.warn(c_msg)
            continue
        n_done += 1
    return n_done


# #endregion
################################################################################
