import argparse
import os
from collections.abc import Iterable
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any


@dataclass(frozen=True, slots=True)
class PathSpec:
    """Specification for validating file path CLI inputs.

    Attributes:
        rule_file_exts: Allowed file extensions (lowercase, no leading dots).
        if_must_exist: Whether the path must already exist.
    """

    rule_file_exts: tuple[str, ...] = ()
    if_must_exist: bool = True


class PathAction(argparse.Action):
    """Validate a file argument and store it as an absolute :class:`Path`.

    Typical usage:
        ``parser.add_argument("input", action=PathAction.file(exts=("csv",)))``
        ``parser.add_argument("output", action=PathAction.file(exts=("xlsx",), if_must_exist=False))``
    """

    def __init__(
        self,
        option_strings: list[str],
        dest: str,
        *,
        spec: PathSpec | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(option_strings, dest, **kwargs)
        self.spec = spec or PathSpec()

    def _normalize_one(self, *, value: str | os.PathLike[str], c_name: str) -> Path:
        path_in = Path(value).expanduser().resolve()
        if self.spec.rule_file_exts:
            c_name_lower = path_in.name.lower()
            if not any(c_name_lower.endswith(f".{_ext}") for _ext in self.spec.rule_file_exts):
                raise argparse.ArgumentError(
                    self,
                    f"[{c_name}]: Expected one of extensions "
                    f"{list(self.spec.rule_file_exts)}, got {path_in.name!r}.",
                )
        if self.spec.if_must_exist:
            if not path_in.exists():
                raise argparse.ArgumentError(self, f"[{c_name}]: File not found: {path_in}")
            if not path_in.is_file():
                raise argparse.ArgumentError(self, f"[{c_name}]: Not a file: {path_in}")
        elif path_in.exists() and not path_in.is_file():
            raise argparse.ArgumentError(self, f"[{c_name}]: Not a file: {path_in}")
        return path_in

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: object | None,
        option_string: str | None = None,
    ) -> None:
        c_name = option_string or self.dest
        if not isinstance(values, (str, os.PathLike)):
            raise argparse.ArgumentError(
                self, f"[{c_name}]: Expected a single path, got {values!r}."
            )
        setattr(namespace, self.dest, self._normalize_one(value=values, c_name=c_name))

    @classmethod
    def file(cls, *, exts: Iterable[str] = (), if_must_exist: bool = True, **kwargs: Any):
        """Factory returning a ``partial`` suitable for argparse ``action``."""
        return partial(
            cls,
            spec=PathSpec(
                rule_file_exts=tuple(
                    str(e).lower().lstrip(".") for e in exts if str(e).strip()
                ),
                if_must_exist=if_must_exist,
            ),
            **kwargs,
        )


class KeyValueAction(argparse.Action):
    """Collect ``KEY=VALUE`` tokens into a dict (``--pivot-data Sales=sum Units=count``)."""

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: object | None,
        option_string: str | None = None,
    ) -> None:
        c_name = option_string or self.dest
        l_tokens = values if isinstance(values, list) else [values]
        dict_out: dict[str, str] = dict(getattr(namespace, self.dest, None) or {})
        for _token in l_tokens:
            c_key, c_sep, c_value = str(_token).partition("=")
            if not c_sep or not c_key.strip() or not c_value.strip():
                raise argparse.ArgumentError(
                    self, f"[{c_name}]: Expected KEY=VALUE, got {_token!r}."
                )
            dict_out[c_key.strip()] = c_value.strip()
        setattr(namespace, self.dest, dict_out)


class PositiveIntAction(argparse.Action):
    """Integer >= 1, for 1-based row/column positions."""

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: object | None,
        option_string: str | None = None,
    ) -> None:
        c_name = option_string or self.dest
        l_values = values if isinstance(values, list) else [values]
        l_out: list[int] = []
        for _value in l_values:
            try:
                n_value = int(str(_value))
            except ValueError:
                raise argparse.ArgumentError(
                    self, f"[{c_name}]: Expected an integer, got {_value!r}."
                ) from None
            if n_value < 1:
                raise argparse.ArgumentError(
                    self, f"[{c_name}]: Must be >= 1, got {n_value}."
                )
            l_out.append(n_value)
        setattr(namespace, self.dest, l_out if isinstance(values, list) else l_out[0])
