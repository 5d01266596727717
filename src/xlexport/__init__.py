from __future__ import annotations

from importlib import import_module
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING, Any

__all__ = [
    "__version__",
    "export",
    "open_workbook",
    "get_or_create_worksheet",
    "create_pivot_definition",
    "create_chart_definition",
    "create_conditional_text",
    "XlsxWorkbook",
    "ExportAddon",
    "SpecExportOptions",
    "SpecExportReport",
    "SpecCellFormat",
    "SpecNumberLocale",
    "SpecSheetMove",
    "SpecAutofitPolicy",
    "SpecChart",
    "SpecPivotTable",
    "SpecPivotChart",
    "SpecConditionalFormat",
    "SpecRangeStyle",
    "EnumChartType",
    "EnumPivotFunction",
    "ExportError",
    "ExportConfigurationConflict",
    "ExportWriteError",
    "ExportPasswordError",
]

try:
    __version__ = version("xlexport")
except PackageNotFoundError:
    __version__ = "0.0.0"

if TYPE_CHECKING:
    from .addon import ExportAddon
    from .chart import create_chart_definition
    from .conditional import create_conditional_text
    from .errors import (
        ExportConfigurationConflict,
        ExportError,
        ExportPasswordError,
        ExportWriteError,
    )
    from .exporter import export
    from .pivot import create_pivot_definition
    from .spec import (
        EnumChartType,
        EnumPivotFunction,
        SpecAutofitPolicy,
        SpecCellFormat,
        SpecChart,
        SpecConditionalFormat,
        SpecExportOptions,
        SpecExportReport,
        SpecNumberLocale,
        SpecPivotChart,
        SpecPivotTable,
        SpecRangeStyle,
        SpecSheetMove,
    )
    from .workbook import XlsxWorkbook, get_or_create_worksheet, open_workbook

_DICT_ATTR_MODULES: dict[str, str] = {
    "export": ".exporter",
    "open_workbook": ".workbook",
    "get_or_create_worksheet": ".workbook",
    "XlsxWorkbook": ".workbook",
    "create_pivot_definition": ".pivot",
    "create_chart_definition": ".chart",
    "create_conditional_text": ".conditional",
    "ExportAddon": ".addon",
    "ExportError": ".errors",
    "ExportConfigurationConflict": ".errors",
    "ExportWriteError": ".errors",
    "ExportPasswordError": ".errors",
}


def __getattr__(name: str) -> Any:
    if name not in __all__ or name == "__version__":
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_loaded = import_module(_DICT_ATTR_MODULES.get(name, ".spec"), package=__name__)
    attr = getattr(module_loaded, name)
    globals()[name] = attr
    return attr


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
