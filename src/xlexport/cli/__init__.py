from __future__ import annotations

from typing import TYPE_CHECKING, Any

from xlexport._optional_deps import import_optional_attr

__all__ = ["main", "build_parser", "CliHeadings"]

if TYPE_CHECKING:
    from .command import build_parser, main
    from .console import CliHeadings


def __getattr__(name: str) -> Any:
    if name in {"main", "build_parser"}:
        return import_optional_attr(
            module_name=".command",
            attr_name=name,
            package=__name__,
            feature="xlexport.cli",
            extras=("cli",),
            required_modules=("rich", "rich_argparse"),
        )
    if name == "CliHeadings":
        return import_optional_attr(
            module_name=".console",
            attr_name=name,
            package=__name__,
            feature="xlexport.cli",
            extras=("cli",),
            required_modules=("rich",),
        )
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
