"""
Post-processing pipeline: the ordered finishing steps applied to the range an
export produced.

Every step is optional and skips itself when its options are unset. A failing
step is logged, recorded on the report, and the next step still runs; only the
password step is fatal.
"""

from collections.abc import Callable
from dataclasses import dataclass
from fnmatch import fnmatchcase

from loguru import logger
from openpyxl.utils import get_column_letter
from openpyxl.utils.cell import absolute_coordinate
from openpyxl.workbook.defined_name import DefinedName
from openpyxl.workbook.protection import WorkbookProtection
from openpyxl.worksheet.table import Table, TableStyleInfo
from openpyxl.worksheet.worksheet import Worksheet

from .addon import apply_addons
from .chart import add_charts
from .conditional import add_conditional_formats
from .errors import ExportPasswordError
from .pivot import add_pivot_tables, create_inline_pivot
from .spec import (
    SpecCellFormat,
    SpecDataRange,
    SpecExportOptions,
    SpecExportReport,
    SpecRangeStyle,
)
from .util import (
    create_sheet_ref,
    estimate_width_len,
    parse_range_bounds,
    sanitize_artifact_name,
    split_sheet_ref,
)
from .workbook import apply_cell_format


@dataclass(slots=True)
class SpecPipelineState:
    ws: Worksheet
    options: SpecExportOptions
    report: SpecExportReport
    data_range: SpecDataRange | None
    header: tuple[str, ...]
    table_name: str | None = None

    def warn(self, msg: str) -> None:
        c_msg = f"[{self.ws.title}] {msg}"
        logger.warning(c_msg)
        self.report.warn(c_msg)


class _StepSkipped(Exception):
    """Raised by a step whose preconditions do not hold; reported as a warning."""


def _require_range(state: SpecPipelineState, what: str) -> SpecDataRange:
    if state.data_range is None:
        raise _StepSkipped(f"{what} skipped: nothing was exported.")
    return state.data_range


################################################################################
# #region Steps
def step_named_ranges(state: SpecPipelineState) -> None:
    opts = state.options
    if not opts.range_name and not opts.auto_name_range:
        return
    data_range = _require_range(state, "Named range")
    wb = state.ws.parent

    l_targets: list[tuple[str, str]] = []
    if opts.range_name:
        l_targets.append((opts.range_name, data_range.to_a1()))
    if opts.auto_name_range:
        if data_range.height_data == 0:
            raise _StepSkipped("Auto named ranges skipped: no data rows.")
        for _idx, _name in enumerate(state.header):
            c_col = get_column_letter(data_range.col_start + _idx)
            l_targets.append(
                (_name, f"{c_col}{data_range.row_data_start}:{c_col}{data_range.row_end}")
            )

    for _name_in, _address in l_targets:
        c_name = sanitize_artifact_name(_name_in, kind="Range", report=state.report)
        c_ref = create_sheet_ref(state.ws.title, absolute_coordinate(_address))
        c_existing = next(
            (_k for _k in wb.defined_names if _k.lower() == c_name.lower()), None
        )
        if c_existing is not None:
            wb.defined_names[c_existing].attr_text = c_ref
            logger.debug(f"[{state.ws.title}] Updated named range {c_existing} -> {c_ref}")
        else:
            wb.defined_names[c_name] = DefinedName(c_name, attr_text=c_ref)
            logger.debug(f"[{state.ws.title}] Added named range {c_name} -> {c_ref}")


def step_table(state: SpecPipelineState) -> None:
    opts = state.options
    if not opts.table_name:
        return
    data_range = _require_range(state, "Table")
    if not data_range.if_has_header:
        raise _StepSkipped("Table skipped: the exported range has no header row.")
    l_names = [str(_h) for _h in state.header]
    if "" in l_names or len({_n.lower() for _n in l_names}) != len(l_names):
        raise _StepSkipped(
            f"Table skipped: header names must be unique and non-empty, got {l_names}."
        )

    c_name = sanitize_artifact_name(opts.table_name, kind="Table", report=state.report)
    c_ref = SpecDataRange(
        row_start=data_range.row_start,
        col_start=data_range.col_start,
        # a table needs at least one body row
        row_end=max(data_range.row_end, data_range.row_start + 1),
        col_end=data_range.col_end,
    ).to_a1()

    for _ws in state.ws.parent.worksheets:
        for _key in _ws.tables:
            if _key.lower() != c_name.lower():
                continue
            _table = _ws.tables[_key]
            if _ws is not state.ws:
                raise _StepSkipped(
                    f"Table {c_name!r} already exists on worksheet {_ws.title!r}."
                )
            _table.ref = c_ref
            if _table.autoFilter is not None:
                _table.autoFilter.ref = c_ref
            # re-derived from the header cells on save
            _table.tableColumns = []
            if opts.table_style:
                _table.tableStyleInfo = TableStyleInfo(
                    name=opts.table_style, showRowStripes=True
                )
            state.table_name = _key
            logger.debug(f"[{state.ws.title}] Updated table {_key} -> {c_ref}")
            return

    table = Table(displayName=c_name, ref=c_ref)
    if opts.table_style:
        table.tableStyleInfo = TableStyleInfo(name=opts.table_style, showRowStripes=True)
    state.ws.add_table(table)
    state.table_name = c_name
    logger.debug(f"[{state.ws.title}] Added table {c_name} -> {c_ref}")


def step_pivot_tables(state: SpecPipelineState) -> None:
    dict_pivots = dict(state.options.pivot_tables)
    dict_pivots.update(create_inline_pivot(state.options, state.ws.title))
    if not dict_pivots:
        return
    add_pivot_tables(
        state.ws, dict_pivots, data_range=state.data_range, report=state.report
    )


def step_auto_filter(state: SpecPipelineState) -> None:
    if not state.options.auto_filter:
        return
    data_range = _require_range(state, "Auto-filter")
    if state.table_name is not None:
        raise _StepSkipped(
            f"Auto-filter skipped: table {state.table_name!r} already filters the range."
        )
    state.ws.auto_filter.ref = data_range.to_a1()


def step_freeze_panes(state: SpecPipelineState) -> None:
    opts = state.options
    n_row_body = state.data_range.row_data_start if state.data_range else 2
    n_col_body = state.data_range.col_start + 1 if state.data_range else 2
    if opts.freeze_top_row:
        if n_row_body <= 1:
            raise _StepSkipped(
                "Freeze top row skipped: the exported range has no header row above row 1."
            )
        c_cell = f"A{n_row_body}"
    elif opts.freeze_first_column:
        c_cell = f"{get_column_letter(n_col_body)}1"
    elif opts.freeze_top_row_first_column:
        c_cell = f"{get_column_letter(n_col_body)}{n_row_body}"
    elif opts.freeze_pane is not None:
        n_row, n_col = opts.freeze_pane
        c_cell = f"{get_column_letter(n_col)}{n_row}"
    else:
        return
    state.ws.freeze_panes = c_cell


def step_bold_top_row(state: SpecPipelineState) -> None:
    if not state.options.bold_top_row:
        return
    data_range = _require_range(state, "Bold top row")
    fmt_bold = SpecCellFormat(bold=True)
    for _row in state.ws.iter_rows(
        min_row=data_range.row_start,
        max_row=data_range.row_start,
        min_col=data_range.col_start,
        max_col=data_range.col_end,
    ):
        for _cell in _row:
            apply_cell_format(_cell, fmt_bold)


def step_autosize(state: SpecPipelineState) -> None:
    if not state.options.autosize:
        return
    data_range = _require_range(state, "Auto-size")
    policy = state.options.autofit_policy
    n_min = max(1, int(policy.width_cell_min))
    n_max = min(255, max(n_min, int(policy.width_cell_max)))
    n_pad = max(0, int(policy.width_cell_padding))
    n_row_body_end = data_range.row_end
    if policy.height_body_inferred_max is not None:
        n_row_body_end = min(
            n_row_body_end, data_range.row_data_start + policy.height_body_inferred_max - 1
        )

    for _col in range(data_range.col_start, data_range.col_end + 1):
        n_header = 0
        if data_range.if_has_header:
            cell = state.ws.cell(row=data_range.row_start, column=_col)
            n_header = estimate_width_len(cell.value)
        n_body = 0
        for (_cell,) in state.ws.iter_rows(
            min_row=data_range.row_data_start,
            max_row=n_row_body_end,
            min_col=_col,
            max_col=_col,
        ):
            n_body = max(n_body, estimate_width_len(_cell.value, num_format=_cell.number_format))
        n_recorded = {"header": n_header, "body": n_body}.get(
            policy.rule_columns, max(n_header, n_body)
        )
        state.ws.column_dimensions[get_column_letter(_col)].width = min(
            n_max, max(n_min, n_recorded + n_pad)
        )


def step_sheet_visibility(state: SpecPipelineState) -> None:
    opts = state.options
    if not (opts.hidden or opts.hide_sheets or opts.unhide_sheets or opts.activate):
        return
    wb = state.ws.parent
    if opts.hidden:
        state.ws.sheet_state = "hidden"
    for _ws in wb.worksheets:
        if any(fnmatchcase(_ws.title, _p) for _p in opts.hide_sheets):
            _ws.sheet_state = "hidden"
    for _ws in wb.worksheets:
        if any(fnmatchcase(_ws.title, _p) for _p in opts.unhide_sheets):
            _ws.sheet_state = "visible"

    l_visible = [_ws for _ws in wb.worksheets if _ws.sheet_state == "visible"]
    if not l_visible:
        state.ws.sheet_state = "visible"
        l_visible = [state.ws]
        state.warn("At least one worksheet must stay visible; kept this one visible.")

    ws_active = state.ws if opts.activate and state.ws.sheet_state == "visible" else wb.active
    if ws_active is None or ws_active.sheet_state != "visible":
        ws_active = l_visible[0]
    wb.active = ws_active
    for _ws in wb.worksheets:
        _ws.sheet_view.tabSelected = _ws is ws_active


def step_charts(state: SpecPipelineState) -> None:
    if not state.options.charts:
        return
    add_charts(
        state.ws,
        state.options.charts,
        data_range=state.data_range,
        header=state.header,
        report=state.report,
    )


def step_conditional_formats(state: SpecPipelineState) -> None:
    if not state.options.conditional_formats:
        return
    add_conditional_formats(
        state.ws,
        state.options.conditional_formats,
        data_range=state.data_range,
        header=state.header,
        report=state.report,
    )


def _resolve_style_bounds(
    state: SpecPipelineState, style: SpecRangeStyle
) -> tuple[int, int, int, int]:
    if style.address is not None:
        return parse_range_bounds(split_sheet_ref(style.address)[1])
    data_range = _require_range(state, "Range style")
    if style.field_name is not None:
        if style.field_name not in state.header:
            raise _StepSkipped(
                f"Range style skipped: field {style.field_name!r} is not in the header."
            )
        n_col = data_range.col_start + state.header.index(style.field_name)
        return data_range.row_data_start, n_col, data_range.row_end, n_col
    return (
        data_range.row_data_start,
        data_range.col_start,
        data_range.row_end,
        data_range.col_end,
    )


def step_cell_styles(state: SpecPipelineState) -> None:
    for _style in state.options.range_styles:
        try:
            n_min_row, n_min_col, n_max_row, n_max_col = _resolve_style_bounds(state, _style)
        except _StepSkipped as exc:
            state.warn(str(exc))
            continue
        if not _style.fmt.is_empty():
            for _row in state.ws.iter_rows(
                min_row=n_min_row, max_row=n_max_row, min_col=n_min_col, max_col=n_max_col
            ):
                for _cell in _row:
                    apply_cell_format(_cell, _style.fmt)
        for _col in range(n_min_col, n_max_col + 1):
            dim = state.ws.column_dimensions[get_column_letter(_col)]
            if _style.width is not None:
                dim.width = _style.width
            if _style.hidden:
                dim.hidden = True

    if state.options.addons:
        data_range = _require_range(state, "Addons")
        n_patched = apply_addons(state.ws, state.options.addons, data_range)
        logger.debug(f"[{state.ws.title}] Addons patched {n_patched} cell(s)")


def step_password(state: SpecPipelineState) -> None:
    c_password = state.options.password
    if not c_password:
        return
    try:
        state.ws.protection.set_password(c_password)
        state.ws.protection.sheet = True
        wb = state.ws.parent
        wb.security = WorkbookProtection(workbookPassword=c_password, lockStructure=True)
    except Exception as exc:
        raise ExportPasswordError(
            f"Failed to protect worksheet {state.ws.title!r}: {exc}"
        ) from exc


# #endregion
################################################################################
# #region Pipeline
TypeStep = Callable[[SpecPipelineState], None]

PIPELINE_STEPS: tuple[tuple[str, TypeStep], ...] = (
    ("named ranges", step_named_ranges),
    ("table", step_table),
    ("pivot tables", step_pivot_tables),
    ("auto-filter", step_auto_filter),
    ("freeze panes", step_freeze_panes),
    ("bold top row", step_bold_top_row),
    ("auto-size", step_autosize),
    ("sheet visibility", step_sheet_visibility),
    ("charts", step_charts),
    ("conditional formats", step_conditional_formats),
    ("cell styles", step_cell_styles),
)


def run_post_process(state: SpecPipelineState) -> None:
    """Run every finishing step in order, then protection."""
    for _c_step, _fn_step in PIPELINE_STEPS:
        try:
            _fn_step(state)
        except _StepSkipped as exc:
            state.warn(str(exc))
        except Exception as exc:
            state.warn(f"Step '{_c_step}' failed: {exc}")
    step_password(state)


# #endregion
################################################################################
