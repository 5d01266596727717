from __future__ import annotations

from collections.abc import Sequence
from importlib import import_module
from typing import Any


def build_optional_dependency_error(
    *, feature: str, extras: Sequence[str], missing_module: str | None
) -> ModuleNotFoundError:
    c_extras = ",".join(dict.fromkeys(extras))
    c_missing = (
        f"Missing optional dependency `{missing_module}`."
        if missing_module
        else "Missing optional dependency."
    )
    return ModuleNotFoundError(
        f"{feature} is unavailable. {c_missing} "
        f"Install extras with `pip install \"xlexport[{c_extras}]\"`."
    )


def import_optional_attr(
    *,
    module_name: str,
    attr_name: str,
    package: str,
    feature: str,
    extras: Sequence[str],
    required_modules: Sequence[str],
) -> Any:
    """
    Import ``attr_name`` from a submodule that depends on an optional extra.

    A ``ModuleNotFoundError`` raised for one of ``required_modules`` is turned
    into an install hint; unrelated import errors propagate untouched.
    """
    try:
        module = import_module(module_name, package=package)
    except ModuleNotFoundError as exc:
        c_root_missing = (exc.name or "").split(".")[0]
        set_roots_required = {_m.split(".")[0] for _m in required_modules}
        if not required_modules or c_root_missing in set_roots_required:
            raise build_optional_dependency_error(
                feature=feature, extras=extras, missing_module=exc.name
            ) from exc
        raise
    return getattr(module, attr_name)
