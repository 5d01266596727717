from collections.abc import Mapping, Sequence
from dataclasses import fields, is_dataclass
from fnmatch import fnmatchcase
from typing import Any

from openpyxl.worksheet.worksheet import Worksheet


def list_record_fields(
    record: Any,
    *,
    display_fields_only: bool = False,
    no_derived_fields: bool = False,
) -> list[str]:
    """
    Field names of one record in declaration order.

    - mapping: its keys
    - dataclass: its fields; with ``display_fields_only`` only ``repr=True`` ones
    - namedtuple: ``_fields``
    - other objects: instance attributes, then public properties of the class
      unless ``no_derived_fields``
    """
    if isinstance(record, Mapping):
        return list(record.keys())

    if is_dataclass(record) and not isinstance(record, type):
        l_fields = [
            _f.name for _f in fields(record) if _f.repr or not display_fields_only
        ]
        if not display_fields_only and not no_derived_fields:
            l_fields += [
                _n for _n in _list_class_properties(type(record)) if _n not in l_fields
            ]
        return l_fields

    if isinstance(record, tuple) and hasattr(record, "_fields"):
        return list(record._fields)

    l_fields = [_n for _n in vars(record) if not _n.startswith("_")]
    if not no_derived_fields:
        l_fields += [
            _n for _n in _list_class_properties(type(record)) if _n not in l_fields
        ]
    return l_fields


def _list_class_properties(cls: type) -> list[str]:
    l_names: list[str] = []
    for _klass in reversed(cls.__mro__):
        for _name, _attr in vars(_klass).items():
            if (
                isinstance(_attr, property)
                and not _name.startswith("_")
                and _name not in l_names
            ):
                l_names.append(_name)
    return l_names


def check_field_excluded(field_name: str, patterns: Sequence[str]) -> bool:
    return any(fnmatchcase(str(field_name), _p) for _p in patterns)


def resolve_header(
    first_record: Any,
    *,
    exclude: Sequence[str] = (),
    display_fields_only: bool = False,
    no_derived_fields: bool = False,
) -> tuple[str, ...]:
    """Ordered header for an export, derived from its first record minus exclusions."""
    return tuple(
        _name
        for _name in list_record_fields(
            first_record,
            display_fields_only=display_fields_only,
            no_derived_fields=no_derived_fields,
        )
        if not check_field_excluded(_name, exclude)
    )


def read_header_row(
    ws: Worksheet, *, row: int, col_start: int, col_end: int | None = None
) -> tuple[str, ...]:
    """
    Read an existing header row back from a worksheet (append mode).

    Reading stops at ``col_end`` (default: the sheet's last used column);
    trailing empty cells are dropped, inner gaps become empty names.
    """
    n_col_end = ws.max_column if col_end is None else col_end
    l_names = [
        ws.cell(row=row, column=_col).value for _col in range(col_start, n_col_end + 1)
    ]
    while l_names and l_names[-1] in (None, ""):
        l_names.pop()
    return tuple("" if _v is None else str(_v) for _v in l_names)
