"""
Cell-value coercion: decide, per value, what a cell becomes.

The decision is an ordered ladder of ``(predicate, handler)`` pairs; the first
predicate that matches picks the handler. Every rung is a pure function of
``(value, field_name, context)`` so equal inputs always coerce alike.
"""

import locale
import math
import numbers
import re
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from functools import lru_cache
from typing import Any
from urllib.parse import urlsplit

from .conf import C_FMT_DATETIME, C_WILDCARD_ALL, DICT_NUMBER_LOCALES, FMT_HYPERLINK
from .errors import ExportConfigurationConflict
from .spec import (
    EnumCellType,
    SpecCellWrite,
    SpecCoercionContext,
    SpecExportOptions,
    SpecNumberLocale,
)

TypePredicate = Callable[[Any, str | None, SpecCoercionContext], bool]
TypeHandler = Callable[[Any, str | None, SpecCoercionContext], SpecCellWrite]

_TUP_NATIVE_NUMBERS = (bool, int, float, Decimal, timedelta)
_SET_URI_SCHEMES_WITHOUT_HOST = frozenset({"mailto", "tel", "urn", "news"})
# a space-like group separator accepts any of these
_C_SPACE_GROUP_SEPS = " \u00a0\u202f"


################################################################################
# #region NumberLocale
def resolve_number_locale(spec: str | SpecNumberLocale) -> SpecNumberLocale:
    """
    Turn a locale name (``"de_DE"``, ``"de-DE"``, ``"system"``) into separators.

    ``"system"`` reads the process locale once; the result is then carried in
    the coercion context so coercion itself never touches global state.
    """
    if isinstance(spec, SpecNumberLocale):
        cfg_locale = spec
    elif spec == "system":
        dict_conv = locale.localeconv()
        cfg_locale = SpecNumberLocale(
            decimal_sep=str(dict_conv["decimal_point"]) or ".",
            group_sep=str(dict_conv["thousands_sep"]),
        )
    else:
        c_key = str(spec).replace("-", "_")
        cfg_locale = DICT_NUMBER_LOCALES.get(c_key)
        if cfg_locale is None:
            raise ExportConfigurationConflict(
                f"Unknown number locale {spec!r}. "
                f"Known: {sorted(DICT_NUMBER_LOCALES)} or 'system'."
            )
    if not cfg_locale.decimal_sep or cfg_locale.decimal_sep == cfg_locale.group_sep:
        raise ExportConfigurationConflict(
            f"Decimal separator must be non-empty and differ from the group "
            f"separator: {cfg_locale!r}"
        )
    return cfg_locale


@lru_cache(maxsize=32)
def _compile_number_pattern(decimal_sep: str, group_sep: str) -> re.Pattern[str]:
    c_dec = re.escape(decimal_sep)
    c_int = r"\d+"
    if group_sep:
        c_chars = re.escape(
            _C_SPACE_GROUP_SEPS if group_sep in _C_SPACE_GROUP_SEPS else group_sep
        )
        c_int = rf"(?:\d{{1,3}}(?:[{c_chars}]\d{{3}})+|\d+)"
    return re.compile(
        rf"^\s*(?P<sign>[+-]?)"
        rf"(?:(?P<int>{c_int})(?:{c_dec}(?P<frac>\d*))?|{c_dec}(?P<frac_only>\d+))"
        rf"(?:[eE](?P<exp>[+-]?\d+))?\s*$"
    )


def parse_localized_number(text: str, number_locale: SpecNumberLocale) -> int | float | None:
    """Parse ``text`` with the given separators; ``None`` when it is not a number."""
    matched = _compile_number_pattern(
        number_locale.decimal_sep, number_locale.group_sep
    ).match(text)
    if matched is None:
        return None

    c_int = re.sub(r"\D", "", matched["int"] or "") or "0"
    c_frac = matched["frac"] or matched["frac_only"]
    c_exp = matched["exp"]
    c_sign = matched["sign"]
    if c_frac is None and c_exp is None:
        try:
            return int(f"{c_sign}{c_int}")
        except ValueError:
            # past the interpreter's int-string digit limit
            return None

    n_value = float(f"{c_sign}{c_int}.{c_frac or '0'}e{c_exp or '0'}")
    return n_value if math.isfinite(n_value) else None


# #endregion
################################################################################
# #region Ladder
def convert_nan_inf_to_str(x: float) -> str:
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "Inf" if x > 0 else "-Inf"
    raise ValueError("Input is neither NaN nor Inf.")


def _is_excluded(field_name: str | None, excluded: frozenset[str]) -> bool:
    return C_WILDCARD_ALL in excluded or (
        field_name is not None and field_name in excluded
    )


def _is_absolute_uri(text: str) -> bool:
    if not text or any(_c.isspace() for _c in text):
        return False
    try:
        parts = urlsplit(text)
    except ValueError:
        return False
    if not parts.scheme or len(parts.scheme) < 2:
        # single-letter schemes are Windows drive letters
        return False
    if parts.scheme.lower() in _SET_URI_SCHEMES_WITHOUT_HOST:
        return bool(parts.path)
    return bool(parts.netloc)


def _number_write(value: Any, ctx: SpecCoercionContext) -> SpecCellWrite:
    return SpecCellWrite(
        value=value,
        cell_type=EnumCellType.NUMBER,
        num_format=ctx.num_format if ctx.if_apply_num_format else None,
    )


def _text_write(value: Any) -> SpecCellWrite:
    if value is None or isinstance(value, str):
        return SpecCellWrite(value=value, cell_type=EnumCellType.TEXT)
    return SpecCellWrite(value=str(value), cell_type=EnumCellType.TEXT)


def _check_date(value: Any, field_name: str | None, ctx: SpecCoercionContext) -> bool:
    return isinstance(value, (date, time))


def _handle_date(value: Any, field_name: str | None, ctx: SpecCoercionContext) -> SpecCellWrite:
    # Excel has no notion of time zones
    if isinstance(value, (datetime, time)) and value.tzinfo is not None:
        value = value.replace(tzinfo=None)
    return SpecCellWrite(
        value=value, cell_type=EnumCellType.DATE, num_format=C_FMT_DATETIME
    )


def _check_native_number(value: Any, field_name: str | None, ctx: SpecCoercionContext) -> bool:
    return isinstance(value, _TUP_NATIVE_NUMBERS) or isinstance(value, numbers.Real)


def _handle_native_number(
    value: Any, field_name: str | None, ctx: SpecCoercionContext
) -> SpecCellWrite:
    if isinstance(value, Decimal) and not value.is_finite():
        return _text_write(str(value))
    if not isinstance(value, _TUP_NATIVE_NUMBERS):
        # numbers.Real the workbook cannot store natively (Fraction, numpy scalars)
        value = int(value) if isinstance(value, numbers.Integral) else float(value)
    if isinstance(value, float) and not math.isfinite(value):
        return _text_write(convert_nan_inf_to_str(value))
    return _number_write(value, ctx)


def _check_no_conversion(value: Any, field_name: str | None, ctx: SpecCoercionContext) -> bool:
    return _is_excluded(field_name, ctx.no_number_conversion)


def _handle_verbatim_text(
    value: Any, field_name: str | None, ctx: SpecCoercionContext
) -> SpecCellWrite:
    return _text_write(value)


def _check_formula(value: Any, field_name: str | None, ctx: SpecCoercionContext) -> bool:
    return isinstance(value, str) and value.startswith("=")


def _handle_formula(value: Any, field_name: str | None, ctx: SpecCoercionContext) -> SpecCellWrite:
    return SpecCellWrite(value=value, cell_type=EnumCellType.FORMULA)


def _check_hyperlink(value: Any, field_name: str | None, ctx: SpecCoercionContext) -> bool:
    return (
        isinstance(value, str)
        and not _is_excluded(field_name, ctx.no_hyperlink_conversion)
        and _is_absolute_uri(value)
    )


def _handle_hyperlink(value: Any, field_name: str | None, ctx: SpecCoercionContext) -> SpecCellWrite:
    return SpecCellWrite(
        value=value,
        cell_type=EnumCellType.HYPERLINK,
        hyperlink=value,
        fmt=FMT_HYPERLINK,
    )


def _check_any(value: Any, field_name: str | None, ctx: SpecCoercionContext) -> bool:
    return True


def _handle_parse_or_text(
    value: Any, field_name: str | None, ctx: SpecCoercionContext
) -> SpecCellWrite:
    if value is None:
        return _text_write(None)
    try:
        c_text = value if isinstance(value, str) else str(value)
    except Exception:
        # an object whose __str__ raises still must not abort the export
        return _text_write(repr(value))
    n_parsed = parse_localized_number(c_text, ctx.number_locale)
    if n_parsed is None:
        return _text_write(c_text)
    return _number_write(n_parsed, ctx)


LADDER_COERCION: tuple[tuple[TypePredicate, TypeHandler], ...] = (
    (_check_date, _handle_date),
    (_check_native_number, _handle_native_number),
    (_check_no_conversion, _handle_verbatim_text),
    (_check_formula, _handle_formula),
    (_check_hyperlink, _handle_hyperlink),
    (_check_any, _handle_parse_or_text),
)


def coerce_value(
    value: Any,
    field_name: str | None,
    context: SpecCoercionContext,
    *,
    ladder: Iterable[tuple[TypePredicate, TypeHandler]] = LADDER_COERCION,
) -> SpecCellWrite:
    """
    Classify one value into a :class:`SpecCellWrite`.

    Order (first match wins): date/time > native number > no-conversion field >
    ``=`` formula > absolute URI > locale-aware numeric parse, else text.
    ``None`` becomes an empty text cell. Never raises for odd value shapes.
    """
    for _check, _handle in ladder:
        if _check(value, field_name, context):
            return _handle(value, field_name, context)
    return _text_write(value)


# #endregion
################################################################################
# #region Context
def create_coercion_context(
    options: SpecExportOptions, *, default_num_format: str = "General"
) -> SpecCoercionContext:
    return SpecCoercionContext(
        num_format=options.num_format,
        default_num_format=default_num_format,
        no_number_conversion=frozenset(options.no_number_conversion),
        no_hyperlink_conversion=frozenset(options.no_hyperlink_conversion),
        number_locale=resolve_number_locale(options.number_locale),
    )


# #endregion
################################################################################
