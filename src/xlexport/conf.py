# Strategy/Preference/Adjustable Parameters for XLSX export.

import re
from collections.abc import Mapping
from types import MappingProxyType

from .spec import SpecCellFormat, SpecNumberLocale

N_NROWS_EXCEL_MAX = 1_048_576
N_NCOLS_EXCEL_MAX = 16_384
N_LEN_EXCEL_SHEET_NAME_MAX = 31
TUP_EXCEL_ILLEGAL = ("*", ":", "?", "/", "\\", "[", "]")

C_FMT_GENERAL = "General"
# Excel builtin 22, the short date-time pattern
C_FMT_DATETIME = "m/d/yy h:mm"
C_WILDCARD_ALL = "*"
C_PIVOT_GRAND_TOTAL = "Grand Total"

# Defined names and table names: letters, digits, underscore, dot.
RE_NAME_ILLEGAL_CHARS = re.compile(r"[^A-Za-z0-9_.]")
RE_NAME_LIKE_CELL_REF = re.compile(r"^[A-Za-z]{1,3}[0-9]+$")

FMT_HYPERLINK = SpecCellFormat(underline="single", font_color="0563C1")
FMT_CONDITIONAL_TEXT = SpecCellFormat(font_color="9C0006", bg_color="FFC7CE")

DICT_NUMBER_LOCALES: Mapping[str, SpecNumberLocale] = MappingProxyType(
    {
        "en_US": SpecNumberLocale(decimal_sep=".", group_sep=","),
        "en_GB": SpecNumberLocale(decimal_sep=".", group_sep=","),
        "ja_JP": SpecNumberLocale(decimal_sep=".", group_sep=","),
        "zh_CN": SpecNumberLocale(decimal_sep=".", group_sep=","),
        "de_DE": SpecNumberLocale(decimal_sep=",", group_sep="."),
        "es_ES": SpecNumberLocale(decimal_sep=",", group_sep="."),
        "it_IT": SpecNumberLocale(decimal_sep=",", group_sep="."),
        "nl_NL": SpecNumberLocale(decimal_sep=",", group_sep="."),
        "pt_BR": SpecNumberLocale(decimal_sep=",", group_sep="."),
        "fr_FR": SpecNumberLocale(decimal_sep=",", group_sep=" "),
        "ru_RU": SpecNumberLocale(decimal_sep=",", group_sep=" "),
        "de_CH": SpecNumberLocale(decimal_sep=".", group_sep="'"),
        "invariant": SpecNumberLocale(decimal_sep=".", group_sep=""),
    }
)

# Common color names accepted wherever a hex color is expected.
DICT_COLOR_NAMES: Mapping[str, str] = MappingProxyType(
    {
        "black": "000000",
        "white": "FFFFFF",
        "red": "FF0000",
        "darkred": "8B0000",
        "lightpink": "FFB6C1",
        "green": "008000",
        "darkgreen": "006400",
        "lightgreen": "90EE90",
        "blue": "0000FF",
        "darkblue": "00008B",
        "lightblue": "ADD8E6",
        "yellow": "FFFF00",
        "lightyellow": "FFFFE0",
        "orange": "FFA500",
        "purple": "800080",
        "gray": "808080",
        "grey": "808080",
        "lightgray": "D3D3D3",
        "lightgrey": "D3D3D3",
        "darkgray": "A9A9A9",
        "darkgrey": "A9A9A9",
    }
)
