# "Facts/Plans/Options" describing one export into an XLSX workbook.

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal

from .errors import ExportConfigurationConflict

if TYPE_CHECKING:
    from .addon import ExportAddon
    from .workbook import XlsxWorkbook


################################################################################
# #region CellFormatSpecification
@dataclass(frozen=True, slots=True)
class SpecCellFormat:
    # None means "leave the cell's current value of this property alone"
    font_name: str | None = None
    font_size: float | None = None
    bold: bool | None = None
    italic: bool | None = None
    underline: Literal["single", "double"] | None = None
    font_color: str | None = None

    bg_color: str | None = None
    num_format: str | None = None

    align: str | None = None
    valign: str | None = None
    text_wrap: bool | None = None
    border: Literal["thin", "medium", "thick", "dashed", "dotted"] | None = None

    def with_(self, **kwargs: Any) -> "SpecCellFormat":
        return replace(self, **kwargs)

    def merge(self, other: "SpecCellFormat") -> "SpecCellFormat":
        # right-hand non-None values win
        data = {
            k: (
                getattr(other, k) if getattr(other, k) is not None else getattr(self, k)
            )
            for k in self.__dataclass_fields__
        }
        return SpecCellFormat(**data)

    def is_empty(self) -> bool:
        return all(getattr(self, k) is None for k in self.__dataclass_fields__)


# #endregion
################################################################################
# #region CellCoercion
class EnumCellType(StrEnum):
    DATE = "Date"
    NUMBER = "Number"
    TEXT = "Text"
    FORMULA = "Formula"
    HYPERLINK = "Hyperlink"


@dataclass(frozen=True, slots=True)
class SpecCellWrite:
    """Outcome of coercing one value: what lands in the cell and how it looks."""

    value: Any
    cell_type: EnumCellType
    num_format: str | None = None
    hyperlink: str | None = None
    fmt: SpecCellFormat | None = None


@dataclass(frozen=True, slots=True)
class SpecNumberLocale:
    decimal_sep: str = "."
    group_sep: str = ","


@dataclass(frozen=True, slots=True)
class SpecCoercionContext:
    num_format: str = "General"
    default_num_format: str = "General"
    no_number_conversion: frozenset[str] = frozenset()
    no_hyperlink_conversion: frozenset[str] = frozenset()
    number_locale: SpecNumberLocale = field(default_factory=SpecNumberLocale)

    @property
    def if_apply_num_format(self) -> bool:
        return self.num_format != self.default_num_format


# #endregion
################################################################################
# #region LayoutSpecification
@dataclass(frozen=True, slots=True)
class SpecDataRange:
    """1-based inclusive bounds of the exported block (title row excluded)."""

    row_start: int
    col_start: int
    row_end: int
    col_end: int
    if_has_header: bool = True

    @property
    def row_data_start(self) -> int:
        return self.row_start + 1 if self.if_has_header else self.row_start

    @property
    def height_data(self) -> int:
        return max(0, self.row_end - self.row_data_start + 1)

    @property
    def width(self) -> int:
        return self.col_end - self.col_start + 1

    def to_a1(self) -> str:
        from openpyxl.utils import get_column_letter

        return (
            f"{get_column_letter(self.col_start)}{self.row_start}:"
            f"{get_column_letter(self.col_end)}{self.row_end}"
        )


@dataclass(frozen=True, slots=True)
class SpecSheetMove:
    to_start: bool = False
    to_end: bool = False
    before: str | None = None
    after: str | None = None

    def validate(self) -> None:
        n_set = sum(
            (self.to_start, self.to_end, self.before is not None, self.after is not None)
        )
        if n_set != 1:
            raise ExportConfigurationConflict(
                "SpecSheetMove needs exactly one of to_start/to_end/before/after, "
                f"got {n_set}."
            )


@dataclass(frozen=True, slots=True)
class SpecAutofitPolicy:
    rule_columns: Literal["header", "body", "all"] = "all"
    height_body_inferred_max: int | None = 1_000
    width_cell_min: int = 8
    width_cell_max: int = 60
    width_cell_padding: int = 2


# #endregion
################################################################################
# #region ArtifactSpecification
class EnumPivotFunction(StrEnum):
    SUM = "Sum"
    COUNT = "Count"
    AVERAGE = "Average"
    MAX = "Max"
    MIN = "Min"
    PRODUCT = "Product"
    STDDEV = "StdDev"
    STDDEVP = "StdDevP"
    VAR = "Var"
    VARP = "VarP"
    COUNTNUMS = "CountNums"

    @classmethod
    def parse(cls, value: "str | EnumPivotFunction") -> "EnumPivotFunction":
        if isinstance(value, cls):
            return value
        c_key = str(value).strip().lower()
        for _member in cls:
            if _member.value.lower() == c_key:
                return _member
        raise ExportConfigurationConflict(
            f"Unknown pivot aggregation {value!r}. "
            f"Allowed: {[m.value for m in cls]}"
        )


class EnumChartType(StrEnum):
    BAR = "bar"
    COLUMN = "column"
    LINE = "line"
    PIE = "pie"
    DOUGHNUT = "doughnut"
    AREA = "area"
    SCATTER = "scatter"
    RADAR = "radar"


@dataclass(frozen=True, slots=True)
class SpecChart:
    """
    A chart drawn from columns of the exported range.

    ``x_field``/``y_fields`` name header columns of the export; ``x_range`` and
    ``y_ranges`` take explicit A1 ranges instead (sheet-qualified or not).
    The chart is anchored ``row_offset``/``col_offset`` cells away from the
    top-left of the data range unless ``anchor`` gives a cell.
    """

    chart_type: EnumChartType = EnumChartType.COLUMN
    title: str | None = None
    x_field: str | None = None
    y_fields: tuple[str, ...] = ()
    x_range: str | None = None
    y_ranges: tuple[str, ...] = ()
    series_names: tuple[str, ...] = ()
    grouping: Literal["clustered", "stacked", "percentStacked", "standard"] | None = None
    anchor: str | None = None
    row_offset: int = 0
    col_offset: int | None = None
    width: float = 15.0
    height: float = 7.5
    no_legend: bool = False
    legend_position: Literal["r", "l", "t", "b", "tr"] = "r"
    x_axis_title: str | None = None
    y_axis_title: str | None = None
    y_axis_num_format: str | None = None
    style: int | None = None


@dataclass(frozen=True, slots=True)
class SpecPivotChart:
    chart_type: EnumChartType = EnumChartType.PIE
    title: str | None = None
    no_legend: bool = False
    show_category: bool = False
    show_percent: bool = False
    width: float = 15.0
    height: float = 7.5


@dataclass(frozen=True, slots=True)
class SpecPivotTable:
    """
    A pivot summary rendered next to (or away from) the exported data.

    Source precedence: ``source_range`` (A1, optionally sheet-qualified, or a
    defined name) > ``source_worksheet`` (its whole used range) > the range
    produced by the export that carries this definition.
    """

    rows: tuple[str, ...] = ()
    columns: tuple[str, ...] = ()
    data: Mapping[str, str | EnumPivotFunction] = field(
        default_factory=lambda: MappingProxyType({})
    )
    filters: tuple[str, ...] = ()
    source_worksheet: str | None = None
    source_range: str | None = None
    target_sheet: str | None = None
    address: str = "A1"
    include_chart: bool = False
    chart: SpecPivotChart = field(default_factory=SpecPivotChart)
    no_totals: bool = False
    table_style: str | None = "TableStyleLight16"


@dataclass(frozen=True, slots=True)
class SpecConditionalFormat:
    """
    One conditional-formatting rule.

    ``rule_type``:
      - ``cell_is``: ``operator`` with one or two ``values`` (formulas/literals)
      - ``formula``: ``formula`` evaluated relative to the top-left cell
      - ``contains_text`` / ``not_contains_text`` / ``begins_with`` /
        ``ends_with``: ``text``
      - ``duplicate_values`` / ``unique_values``
      - ``color_scale``: two or three ``colors`` (low, [mid,] high)
      - ``data_bar``: first of ``colors``
      - ``icon_set``: ``icon_style``

    Target: ``address`` (A1) > ``field_name`` (a header column, data rows only) >
    all data rows of the export.
    """

    rule_type: Literal[
        "cell_is",
        "formula",
        "contains_text",
        "not_contains_text",
        "begins_with",
        "ends_with",
        "duplicate_values",
        "unique_values",
        "color_scale",
        "data_bar",
        "icon_set",
    ] = "cell_is"
    address: str | None = None
    field_name: str | None = None
    operator: str = "equal"
    values: tuple[Any, ...] = ()
    formula: str | None = None
    text: str | None = None
    colors: tuple[str, ...] = ()
    icon_style: str = "3TrafficLights1"
    fmt: SpecCellFormat = field(default_factory=SpecCellFormat)
    stop_if_true: bool = False


@dataclass(frozen=True, slots=True)
class SpecRangeStyle:
    """Static style for an A1 range, a header column, or the whole data range."""

    fmt: SpecCellFormat
    address: str | None = None
    field_name: str | None = None
    width: float | None = None
    hidden: bool = False


# #endregion
################################################################################
# #region ExportOptions
@dataclass(frozen=True, slots=True)
class SpecExportOptions:
    """
    Every knob of :func:`xlexport.export`.

    A falsy/None option means its step is skipped entirely. The instance is
    immutable; derive variants with :meth:`with_`.
    """

    worksheet_name: str = "Sheet1"
    title: str | None = None
    title_format: SpecCellFormat = field(
        default_factory=lambda: SpecCellFormat(bold=True, font_size=22)
    )
    start_row: int = 1
    start_column: int = 1

    no_header: bool = False
    exclude_fields: tuple[str, ...] = ()
    display_fields_only: bool = False
    no_derived_fields: bool = False

    num_format: str = "General"
    no_number_conversion: tuple[str, ...] = ()
    no_hyperlink_conversion: tuple[str, ...] = ()
    number_locale: str | SpecNumberLocale = "en_US"

    append: bool = False
    clear_sheet: bool = False
    move: SpecSheetMove | None = None

    range_name: str | None = None
    auto_name_range: bool = False
    table_name: str | None = None
    table_style: str = "TableStyleMedium6"

    pivot_rows: tuple[str, ...] = ()
    pivot_columns: tuple[str, ...] = ()
    pivot_data: Mapping[str, str | EnumPivotFunction] = field(
        default_factory=lambda: MappingProxyType({})
    )
    pivot_filter: tuple[str, ...] = ()
    include_pivot_chart: bool = False
    pivot_chart: SpecPivotChart = field(default_factory=SpecPivotChart)
    pivot_tables: Mapping[str, SpecPivotTable] = field(
        default_factory=lambda: MappingProxyType({})
    )

    auto_filter: bool = False
    freeze_top_row: bool = False
    freeze_first_column: bool = False
    freeze_top_row_first_column: bool = False
    freeze_pane: tuple[int, int] | None = None
    bold_top_row: bool = False
    autosize: bool = False
    autofit_policy: SpecAutofitPolicy = field(default_factory=SpecAutofitPolicy)
    hidden: bool = False
    hide_sheets: tuple[str, ...] = ()
    unhide_sheets: tuple[str, ...] = ()
    activate: bool = False

    charts: tuple[SpecChart, ...] = ()
    conditional_formats: tuple[SpecConditionalFormat, ...] = ()
    range_styles: tuple[SpecRangeStyle, ...] = ()
    addons: tuple["ExportAddon", ...] = ()
    password: str | None = None

    pass_thru: bool = False

    def with_(self, **kwargs: Any) -> "SpecExportOptions":
        set_known = {_f.name for _f in fields(self)}
        if l_unknown := sorted(set(kwargs) - set_known):
            raise ExportConfigurationConflict(f"Unknown export option(s): {l_unknown}")
        return replace(self, **kwargs)

    @property
    def if_inline_pivot(self) -> bool:
        return bool(self.pivot_rows or self.pivot_columns or self.pivot_data)

    def validate(self) -> None:
        """Reject option combinations that cannot be honoured. Runs before any I/O."""
        if self.append and self.clear_sheet:
            raise ExportConfigurationConflict(
                "`append` and `clear_sheet` cannot be requested together."
            )
        if not self.worksheet_name or not str(self.worksheet_name).strip():
            raise ExportConfigurationConflict("`worksheet_name` must be non-empty.")
        from .conf import N_NCOLS_EXCEL_MAX, N_NROWS_EXCEL_MAX

        if not 1 <= self.start_row <= N_NROWS_EXCEL_MAX:
            raise ExportConfigurationConflict(
                f"`start_row` must be within 1..{N_NROWS_EXCEL_MAX}, got {self.start_row}."
            )
        if not 1 <= self.start_column <= N_NCOLS_EXCEL_MAX:
            raise ExportConfigurationConflict(
                f"`start_column` must be within 1..{N_NCOLS_EXCEL_MAX}, "
                f"got {self.start_column}."
            )
        if self.freeze_pane is not None and (
            len(self.freeze_pane) != 2 or min(self.freeze_pane) < 1
        ):
            raise ExportConfigurationConflict(
                f"`freeze_pane` must be a (row, column) pair of 1-based indices, "
                f"got {self.freeze_pane!r}."
            )
        if self.include_pivot_chart and not self.if_inline_pivot:
            raise ExportConfigurationConflict(
                "`include_pivot_chart` needs `pivot_rows`, `pivot_columns` or `pivot_data`."
            )
        for _func in self.pivot_data.values():
            EnumPivotFunction.parse(_func)
        for _name, _pivot in self.pivot_tables.items():
            if not (_pivot.rows or _pivot.columns or _pivot.data):
                raise ExportConfigurationConflict(
                    f"Pivot definition {_name!r} has no rows, columns or data fields."
                )
            for _func in _pivot.data.values():
                EnumPivotFunction.parse(_func)
        if self.move is not None:
            self.move.validate()

        from .coercion import resolve_number_locale

        resolve_number_locale(self.number_locale)


# #endregion
################################################################################
# #region ReportSpecification
@dataclass(slots=True)
class SpecExportReport:
    sheet_name: str
    path: Path | None = None
    data_range: SpecDataRange | None = None
    header: tuple[str, ...] = ()
    rows_written: int = 0
    warnings: list[str] = field(default_factory=list)
    workbook: "XlsxWorkbook | None" = None

    def warn(self, msg: str) -> None:
        self.warnings.append(str(msg))

    @property
    def address(self) -> str | None:
        return None if self.data_range is None else self.data_range.to_a1()


# #endregion
################################################################################
