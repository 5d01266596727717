"""
Chart definitions and their openpyxl rendition.

Charts are a pass-through: a :class:`SpecChart` names columns of the exported
range (or explicit A1 ranges) and is turned into an openpyxl chart anchored on
the worksheet. Rendering itself is left to the spreadsheet application.
"""

from collections.abc import Sequence
from typing import Any

from loguru import logger
from openpyxl.chart import (
    AreaChart,
    BarChart,
    DoughnutChart,
    LineChart,
    PieChart,
    RadarChart,
    Reference,
    ScatterChart,
    Series,
)
from openpyxl.chart._chart import ChartBase
from openpyxl.chart.marker import Marker
from openpyxl.chart.shapes import GraphicalProperties
from openpyxl.drawing.line import LineProperties
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .errors import ExportConfigurationConflict
from .spec import EnumChartType, SpecChart, SpecDataRange, SpecExportReport
from .util import parse_range_bounds, split_sheet_ref

_TUP_PIE_TYPES = (EnumChartType.PIE, EnumChartType.DOUGHNUT)


################################################################################
# #region Definition
def parse_chart_type(value: str | EnumChartType) -> EnumChartType:
    if isinstance(value, EnumChartType):
        return value
    try:
        return EnumChartType(str(value).strip().lower())
    except ValueError:
        raise ExportConfigurationConflict(
            f"Unknown chart type {value!r}. Allowed: {[m.value for m in EnumChartType]}"
        ) from None


def _as_tuple(value: str | Sequence[str] | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def create_chart_definition(
    chart_type: str | EnumChartType = EnumChartType.COLUMN,
    *,
    x_field: str | None = None,
    y_fields: str | Sequence[str] | None = None,
    x_range: str | None = None,
    y_ranges: str | Sequence[str] | None = None,
    series_names: str | Sequence[str] | None = None,
    **kwargs: Any,
) -> SpecChart:
    """
    Build a :class:`SpecChart` for ``SpecExportOptions.charts``.

    Single strings are accepted wherever a sequence of fields/ranges/names is.
    Remaining keyword arguments map 1:1 to :class:`SpecChart` fields.

    Examples
    --------
    >>> create_chart_definition("line", x_field="Month", y_fields=["Sales", "Cost"])
    """
    return SpecChart(
        chart_type=parse_chart_type(chart_type),
        x_field=x_field,
        y_fields=_as_tuple(y_fields),
        x_range=x_range,
        y_ranges=_as_tuple(y_ranges),
        series_names=_as_tuple(series_names),
        **kwargs,
    )


# #endregion
################################################################################
# #region Build
def create_chart_object(
    chart_type: EnumChartType, *, grouping: str | None = None
) -> ChartBase:
    """Empty openpyxl chart of the requested kind."""
    if chart_type in (EnumChartType.BAR, EnumChartType.COLUMN):
        chart = BarChart()
        chart.type = "bar" if chart_type is EnumChartType.BAR else "col"
        if grouping in ("stacked", "percentStacked"):
            chart.grouping = grouping
            chart.overlap = 100
        return chart
    if chart_type in (EnumChartType.LINE, EnumChartType.AREA):
        chart = LineChart() if chart_type is EnumChartType.LINE else AreaChart()
        if grouping in ("standard", "stacked", "percentStacked"):
            chart.grouping = grouping
        return chart
    if chart_type is EnumChartType.PIE:
        return PieChart()
    if chart_type is EnumChartType.DOUGHNUT:
        return DoughnutChart()
    if chart_type is EnumChartType.SCATTER:
        return ScatterChart()
    return RadarChart()


def get_chart_anchor_cell(chart: ChartBase) -> str | None:
    """A1 cell of a chart's top-left corner, for both new and loaded charts."""
    anchor = chart.anchor
    if isinstance(anchor, str):
        return anchor.replace("$", "").upper()
    marker = getattr(anchor, "_from", None)
    if marker is None:
        return None
    return f"{get_column_letter(marker.col + 1)}{marker.row + 1}"


def remove_charts_at(ws: Worksheet, anchors: set[str]) -> int:
    l_keep = [_c for _c in ws._charts if get_chart_anchor_cell(_c) not in anchors]
    n_removed = len(ws._charts) - len(l_keep)
    ws._charts = l_keep
    return n_removed


def _field_reference(
    ws: Worksheet,
    data_range: SpecDataRange,
    header: Sequence[str],
    field_name: str,
    *,
    if_with_title: bool,
) -> Reference:
    if field_name not in header:
        raise ValueError(f"Chart field {field_name!r} is not in the header {list(header)}.")
    n_col = data_range.col_start + list(header).index(field_name)
    n_min_row = (
        data_range.row_start
        if if_with_title and data_range.if_has_header
        else data_range.row_data_start
    )
    return Reference(ws, min_col=n_col, min_row=n_min_row, max_row=data_range.row_end)


def _range_reference(ws: Worksheet, ref: str) -> Reference:
    c_sheet, c_address = split_sheet_ref(ref)
    ws_src = ws if c_sheet is None else ws.parent[c_sheet]
    n_min_row, n_min_col, n_max_row, n_max_col = parse_range_bounds(c_address)
    return Reference(
        ws_src, min_col=n_min_col, min_row=n_min_row, max_col=n_max_col, max_row=n_max_row
    )


def _resolve_anchor(spec: SpecChart, data_range: SpecDataRange | None) -> str:
    if spec.anchor is not None:
        return spec.anchor.replace("$", "").upper()
    n_row = (1 if data_range is None else data_range.row_start) + spec.row_offset
    if spec.col_offset is not None:
        n_col = (1 if data_range is None else data_range.col_start) + spec.col_offset
    else:
        n_col = 1 if data_range is None else data_range.col_end + 2
    return f"{get_column_letter(max(1, n_col))}{max(1, n_row)}"


def build_chart(
    ws: Worksheet,
    spec: SpecChart,
    *,
    data_range: SpecDataRange | None,
    header: Sequence[str],
) -> tuple[ChartBase, str]:
    """Return ``(chart, anchor_cell)``; nothing is attached to ``ws`` yet."""
    x_ref: Reference | None = None
    if spec.x_range is not None:
        x_ref = _range_reference(ws, spec.x_range)

    l_y_fields = list(spec.y_fields)
    c_x_field = spec.x_field
    if not spec.y_ranges and not l_y_fields and header:
        # no series given: first column is the category axis, the rest are series
        c_x_field = c_x_field or (header[0] if len(header) > 1 else None)
        l_y_fields = [_h for _h in header if _h != c_x_field]

    if (l_y_fields or c_x_field) and data_range is None:
        raise ValueError("Chart fields need an exported data range.")
    if x_ref is None and c_x_field is not None:
        x_ref = _field_reference(ws, data_range, header, c_x_field, if_with_title=False)

    l_series: list[tuple[Reference, str | None, bool]] = []
    for _name in l_y_fields:
        if_title_from_data = bool(data_range.if_has_header)
        l_series.append(
            (
                _field_reference(
                    ws, data_range, header, _name, if_with_title=if_title_from_data
                ),
                None if if_title_from_data else _name,
                if_title_from_data,
            )
        )
    for _ref in spec.y_ranges:
        l_series.append((_range_reference(ws, _ref), None, False))
    if not l_series:
        raise ValueError("Chart has no data series.")

    chart = create_chart_object(spec.chart_type, grouping=spec.grouping)
    for _idx, (_ref, _title, _if_title_from_data) in enumerate(l_series):
        if _idx < len(spec.series_names) and spec.series_names[_idx]:
            _title = spec.series_names[_idx]
            if _if_title_from_data:
                # drop the header cell, the explicit name replaces it
                _ref = Reference(
                    _ref.worksheet,
                    min_col=_ref.min_col,
                    min_row=_ref.min_row + 1,
                    max_col=_ref.max_col,
                    max_row=_ref.max_row,
                )
                _if_title_from_data = False
        if spec.chart_type is EnumChartType.SCATTER:
            series = Series(
                _ref, xvalues=x_ref, title=_title, title_from_data=_if_title_from_data
            )
            series.marker = Marker(symbol="circle")
            series.graphicalProperties = GraphicalProperties(ln=LineProperties(noFill=True))
        else:
            series = Series(_ref, title=_title, title_from_data=_if_title_from_data)
        chart.series.append(series)
    if x_ref is not None and spec.chart_type is not EnumChartType.SCATTER:
        chart.set_categories(x_ref)

    _apply_chart_options(chart, spec)
    return chart, _resolve_anchor(spec, data_range)


def _apply_chart_options(chart: ChartBase, spec: SpecChart) -> None:
    if spec.title is not None:
        chart.title = spec.title
    chart.width = spec.width
    chart.height = spec.height
    if spec.style is not None:
        chart.style = spec.style
    if spec.no_legend:
        chart.legend = None
    elif chart.legend is not None:
        chart.legend.position = spec.legend_position

    if spec.chart_type in _TUP_PIE_TYPES:
        return
    chart.x_axis.delete = False
    chart.y_axis.delete = False
    if spec.x_axis_title is not None:
        chart.x_axis.title = spec.x_axis_title
    if spec.y_axis_title is not None:
        chart.y_axis.title = spec.y_axis_title
    if spec.y_axis_num_format is not None:
        chart.y_axis.number_format = spec.y_axis_num_format


# #endregion
################################################################################
# #region Attach
def add_charts(
    ws: Worksheet,
    specs: Sequence[SpecChart],
    *,
    data_range: SpecDataRange | None,
    header: Sequence[str],
    report: SpecExportReport,
) -> int:
    """
    Attach every chart in ``specs``; charts that already sat at one of the new
    anchors are replaced. A chart that cannot be built is reported and skipped.
    """
    l_built: list[tuple[ChartBase, str]] = []
    for _idx, _spec in enumerate(specs):
        try:
            l_built.append(build_chart(ws, _spec, data_range=data_range, header=header))
        except Exception as exc:
            c_msg = f"[{ws.title}] Chart #{_idx + 1} skipped: {exc}"
            logger.warning(c_msg)
            report.warn(c_msg)

    n_removed = remove_charts_at(ws, {_anchor for _, _anchor in l_built})
    if n_removed:
        logger.debug(f"[{ws.title}] Replaced {n_removed} existing chart(s)")
    for _chart, _anchor in l_built:
        ws.add_chart(_chart, _anchor)
    return len(l_built)


# #endregion
################################################################################
