from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Any

from loguru import logger
from openpyxl.formatting.rule import (
    ColorScaleRule,
    DataBarRule,
    IconSetRule,
    Rule,
)
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .conf import FMT_CONDITIONAL_TEXT
from .errors import ExportConfigurationConflict
from .spec import SpecCellFormat, SpecConditionalFormat, SpecDataRange, SpecExportReport
from .util import parse_range_bounds, split_sheet_ref
from .workbook import create_differential_style, normalize_color

DICT_CELL_IS_OPERATORS: Mapping[str, str] = MappingProxyType(
    {
        "=": "equal",
        "==": "equal",
        "equal": "equal",
        "!=": "notEqual",
        "<>": "notEqual",
        "notequal": "notEqual",
        ">": "greaterThan",
        "greaterthan": "greaterThan",
        ">=": "greaterThanOrEqual",
        "greaterthanorequal": "greaterThanOrEqual",
        "<": "lessThan",
        "lessthan": "lessThan",
        "<=": "lessThanOrEqual",
        "lessthanorequal": "lessThanOrEqual",
        "between": "between",
        "notbetween": "notBetween",
    }
)
_SET_TEXT_RULES = frozenset({"contains_text", "not_contains_text", "begins_with", "ends_with"})


def create_conditional_text(
    text: str,
    *,
    condition: str = "contains_text",
    address: str | None = None,
    field_name: str | None = None,
    fmt: SpecCellFormat | None = None,
) -> SpecConditionalFormat:
    """
    Quick text highlight: by default cells containing ``text`` get dark red
    font on a light red fill.
    """
    if condition not in _SET_TEXT_RULES:
        raise ExportConfigurationConflict(
            f"Unknown text condition {condition!r}. Allowed: {sorted(_SET_TEXT_RULES)}"
        )
    return SpecConditionalFormat(
        rule_type=condition,  # type: ignore[arg-type]
        text=text,
        address=address,
        field_name=field_name,
        fmt=FMT_CONDITIONAL_TEXT if fmt is None else fmt,
    )


################################################################################
# #region Rules
def _quote_text(text: str) -> str:
    return '"' + str(text).replace('"', '""') + '"'


def _format_operand(value: Any) -> str:
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    c_value = str(value)
    if c_value.startswith("="):
        return c_value[1:]
    return _quote_text(c_value)


def resolve_target_address(
    spec: SpecConditionalFormat,
    *,
    data_range: SpecDataRange | None,
    header: Sequence[str],
) -> str:
    if spec.address is not None:
        return split_sheet_ref(spec.address)[1]
    if data_range is None:
        raise ValueError("Conditional format needs an address or an exported data range.")
    n_row_start = data_range.row_data_start
    if n_row_start > data_range.row_end:
        raise ValueError("Exported range has no data rows to format.")
    if spec.field_name is not None:
        if spec.field_name not in header:
            raise ValueError(f"Field {spec.field_name!r} is not in the header {list(header)}.")
        c_col = get_column_letter(data_range.col_start + list(header).index(spec.field_name))
        return f"{c_col}{n_row_start}:{c_col}{data_range.row_end}"
    return (
        f"{get_column_letter(data_range.col_start)}{n_row_start}:"
        f"{get_column_letter(data_range.col_end)}{data_range.row_end}"
    )


def build_rule(spec: SpecConditionalFormat, address: str) -> Rule:
    n_min_row, n_min_col, _, _ = parse_range_bounds(address)
    c_top_left = f"{get_column_letter(n_min_col)}{n_min_row}"
    fmt = FMT_CONDITIONAL_TEXT if spec.fmt.is_empty() else spec.fmt
    b_stop = True if spec.stop_if_true else None

    if spec.rule_type == "cell_is":
        c_operator = DICT_CELL_IS_OPERATORS.get(str(spec.operator).lower().replace(" ", ""))
        if c_operator is None:
            raise ValueError(f"Unknown comparison operator {spec.operator!r}.")
        n_values = 2 if c_operator in ("between", "notBetween") else 1
        if len(spec.values) != n_values:
            raise ValueError(f"Operator {c_operator!r} takes {n_values} value(s), got {len(spec.values)}.")
        return Rule(
            type="cellIs",
            operator=c_operator,
            formula=[_format_operand(_v) for _v in spec.values],
            dxf=create_differential_style(fmt),
            stopIfTrue=b_stop,
        )

    if spec.rule_type == "formula":
        if not spec.formula:
            raise ValueError("Formula rule needs `formula`.")
        return Rule(
            type="expression",
            formula=[spec.formula.removeprefix("=")],
            dxf=create_differential_style(fmt),
            stopIfTrue=b_stop,
        )

    if spec.rule_type in _SET_TEXT_RULES:
        if not spec.text:
            raise ValueError(f"{spec.rule_type} rule needs `text`.")
        c_text = _quote_text(spec.text)
        dict_text_rules = {
            "contains_text": ("containsText", "containsText", f"NOT(ISERROR(SEARCH({c_text},{c_top_left})))"),
            "not_contains_text": ("notContainsText", "notContains", f"ISERROR(SEARCH({c_text},{c_top_left}))"),
            "begins_with": ("beginsWith", "beginsWith", f"LEFT({c_top_left},LEN({c_text}))={c_text}"),
            "ends_with": ("endsWith", "endsWith", f"RIGHT({c_top_left},LEN({c_text}))={c_text}"),
        }
        c_type, c_operator, c_formula = dict_text_rules[spec.rule_type]
        return Rule(
            type=c_type,
            operator=c_operator,
            text=spec.text,
            formula=[c_formula],
            dxf=create_differential_style(fmt),
            stopIfTrue=b_stop,
        )

    if spec.rule_type in ("duplicate_values", "unique_values"):
        return Rule(
            type="duplicateValues" if spec.rule_type == "duplicate_values" else "uniqueValues",
            dxf=create_differential_style(fmt),
            stopIfTrue=b_stop,
        )

    if spec.rule_type == "color_scale":
        l_colors = [normalize_color(_c) for _c in spec.colors] or ["F8696B", "63BE7B"]
        if len(l_colors) == 2:
            return ColorScaleRule(
                start_type="min", start_color=l_colors[0], end_type="max", end_color=l_colors[1]
            )
        if len(l_colors) == 3:
            return ColorScaleRule(
                start_type="min",
                start_color=l_colors[0],
                mid_type="percentile",
                mid_value=50,
                mid_color=l_colors[1],
                end_type="max",
                end_color=l_colors[2],
            )
        raise ValueError(f"Color scale takes 2 or 3 colors, got {len(l_colors)}.")

    if spec.rule_type == "data_bar":
        c_color = normalize_color(spec.colors[0]) if spec.colors else "638EC6"
        return DataBarRule(start_type="min", end_type="max", color=c_color)

    if spec.rule_type == "icon_set":
        n_icons = int(spec.icon_style[0]) if spec.icon_style[:1].isdigit() else 3
        l_thresholds = [round(100 * _i / n_icons) for _i in range(n_icons)]
        return IconSetRule(spec.icon_style, "percent", l_thresholds)

    raise ValueError(f"Unknown conditional format rule type {spec.rule_type!r}.")


# #endregion
################################################################################
# #region Attach
def add_conditional_formats(
    ws: Worksheet,
    specs: Sequence[SpecConditionalFormat],
    *,
    data_range: SpecDataRange | None,
    header: Sequence[str],
    report: SpecExportReport,
) -> int:
    """Attach every rule; a rule that cannot be built is reported and skipped."""
    n_added = 0
    for _idx, _spec in enumerate(specs):
        try:
            c_address = resolve_target_address(_spec, data_range=data_range, header=header)
            ws.conditional_formatting.add(c_address, build_rule(_spec, c_address))
        except Exception as exc:
            c_msg = f"[{ws.title}] Conditional format #{_idx + 1} ({_spec.rule_type}) skipped: {exc}"
            logger.warning(c_msg)
            report.warn(c_msg)
            continue
        n_added += 1
    return n_added


# #endregion
################################################################################
