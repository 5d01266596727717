"""``xlexport`` command: read a tabular file with polars and export it to xlsx.

    xlexport sales.csv report.xlsx --worksheet-name Sales --table-name Sales \\
        --autosize --freeze-top-row --pivot-rows Region --pivot-data Amount=sum
"""

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

import polars as pl
from loguru import logger
from rich.markup import escape
from rich_argparse import ArgumentDefaultsRichHelpFormatter, RawTextRichHelpFormatter

from ..conditional import create_conditional_text
from ..errors import ExportError
from ..exporter import export
from ..spec import EnumChartType, SpecExportOptions, SpecPivotChart, SpecSheetMove
from .actions import KeyValueAction, PathAction, PositiveIntAction
from .console import CliHeadings

TUP_INPUT_FORMATS = ("csv", "tsv", "json", "ndjson", "jsonl", "parquet")


class SmartFormatter(ArgumentDefaultsRichHelpFormatter, RawTextRichHelpFormatter):
    """
    Keep manual newlines/indentation AND show (default: ...) in help.
    """

    pass


################################################################################
# #region Input
def detect_input_format(path: Path) -> str:
    c_suffix = path.suffix.lower().lstrip(".")
    if c_suffix not in TUP_INPUT_FORMATS:
        raise ValueError(
            f"Cannot tell the format of {path.name!r}; pass --format {{{','.join(TUP_INPUT_FORMATS)}}}."
        )
    return c_suffix


def read_input(
    path: Path, *, fmt: str | None = None, separator: str | None = None
) -> pl.DataFrame:
    """
    Load ``path`` into a DataFrame.

    Delimited text is read without schema inference: every cell arrives as a
    string and the export's own number/date/hyperlink rules decide its type.
    """
    c_fmt = fmt or detect_input_format(path)
    if c_fmt in ("csv", "tsv"):
        return pl.read_csv(
            path,
            separator=separator or ("\t" if c_fmt == "tsv" else ","),
            infer_schema=False,
        )
    if c_fmt == "json":
        return pl.read_json(path)
    if c_fmt in ("ndjson", "jsonl"):
        return pl.read_ndjson(path)
    return pl.read_parquet(path)


# #endregion
################################################################################
# #region Parser
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xlexport",
        description="Export a CSV/TSV/JSON/NDJSON/Parquet file into an xlsx worksheet.",
        formatter_class=SmartFormatter,
    )
    parser.add_argument(
        "input", action=PathAction.file(exts=TUP_INPUT_FORMATS), help="Input data file"
    )
    parser.add_argument(
        "output",
        action=PathAction.file(exts=("xlsx", "xlsm"), if_must_exist=False),
        help="Destination workbook (created when missing)",
    )
    parser.add_argument("--format", choices=TUP_INPUT_FORMATS, default=None, help="Input format\n(default: from the file extension)")
    parser.add_argument("--separator", default=None, help="Field separator for csv/tsv input")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not print the summary")

    grp_layout = parser.add_argument_group("Layout")
    grp_layout.add_argument("-w", "--worksheet-name", default="Sheet1", help="Target worksheet")
    grp_layout.add_argument("--title", default=None, help="Title written above the data")
    grp_layout.add_argument("--start-row", action=PositiveIntAction, default=1, help="1-based start row")
    grp_layout.add_argument("--start-column", action=PositiveIntAction, default=1, help="1-based start column")
    grp_layout.add_argument("--no-header", action="store_true", help="Do not write the header row")
    grp_layout.add_argument("--exclude", nargs="+", default=[], metavar="FIELD", help="Fields to leave out\n(glob patterns allowed)")
    grp_layout.add_argument("--append", action="store_true", help="Append below existing data, reusing its header")
    grp_layout.add_argument("--clear-sheet", action="store_true", help="Start from an empty worksheet")
    grp_move = grp_layout.add_mutually_exclusive_group()
    grp_move.add_argument("--move-to-start", action="store_true", help="Make the worksheet the first one")
    grp_move.add_argument("--move-to-end", action="store_true", help="Make the worksheet the last one")
    grp_move.add_argument("--move-before", default=None, metavar="SHEET", help="Place the worksheet before SHEET")
    grp_move.add_argument("--move-after", default=None, metavar="SHEET", help="Place the worksheet after SHEET")

    grp_values = parser.add_argument_group("Values")
    grp_values.add_argument("--num-format", default="General", help="Number format for numeric cells")
    grp_values.add_argument("--no-number-conversion", nargs="+", default=[], metavar="FIELD", help="Fields kept as text\n('*' for all)")
    grp_values.add_argument("--no-hyperlink-conversion", nargs="+", default=[], metavar="FIELD", help="Fields whose URIs stay plain text\n('*' for all)")
    grp_values.add_argument("--number-locale", default="en_US", help="Separators used to parse numbers in text\n(e.g. de_DE, fr_FR, system)")

    grp_artifacts = parser.add_argument_group("Ranges, tables and pivots")
    grp_artifacts.add_argument("--range-name", default=None, help="Named range over the exported block")
    grp_artifacts.add_argument("--auto-name-range", action="store_true", help="One named range per column")
    grp_artifacts.add_argument("--table-name", default=None, help="Register the block as a table")
    grp_artifacts.add_argument("--table-style", default="TableStyleMedium6", help="Table style")
    grp_artifacts.add_argument("--pivot-rows", nargs="+", default=[], metavar="FIELD", help="Pivot row fields")
    grp_artifacts.add_argument("--pivot-columns", nargs="+", default=[], metavar="FIELD", help="Pivot column fields")
    grp_artifacts.add_argument("--pivot-data", nargs="+", action=KeyValueAction, default={}, metavar="FIELD=FUNC", help="Pivot data fields and aggregations\n(Sum, Count, Average, Max, Min, ...)")
    grp_artifacts.add_argument("--pivot-filter", nargs="+", default=[], metavar="FIELD", help="Pivot filter fields")
    grp_artifacts.add_argument("--include-pivot-chart", action="store_true", help="Chart the pivot")
    grp_artifacts.add_argument("--pivot-chart-type", choices=[m.value for m in EnumChartType], default=EnumChartType.PIE.value, help="Pivot chart kind")

    grp_view = parser.add_argument_group("View and styling")
    grp_view.add_argument("--auto-filter", action="store_true", help="Filter buttons on the header")
    grp_freeze = grp_view.add_mutually_exclusive_group()
    grp_freeze.add_argument("--freeze-top-row", action="store_true", help="Freeze the header row")
    grp_freeze.add_argument("--freeze-first-column", action="store_true", help="Freeze the first column")
    grp_freeze.add_argument("--freeze-top-row-first-column", action="store_true", help="Freeze both")
    grp_freeze.add_argument("--freeze-pane", nargs=2, action=PositiveIntAction, default=None, metavar=("ROW", "COL"), help="Freeze above/left of ROW, COL")
    grp_view.add_argument("--bold-top-row", action="store_true", help="Bold the header row")
    grp_view.add_argument("--autosize", action="store_true", help="Fit column widths to content")
    grp_view.add_argument("--hidden", action="store_true", help="Hide the worksheet")
    grp_view.add_argument("--activate", action="store_true", help="Make the worksheet the active one")
    grp_view.add_argument("--conditional-text", nargs="+", default=[], metavar="TEXT", help="Highlight cells containing TEXT")
    grp_view.add_argument("--password", default=None, help="Protect the worksheet and workbook structure")
    return parser


def build_options(ns: argparse.Namespace) -> SpecExportOptions:
    move = None
    if ns.move_to_start:
        move = SpecSheetMove(to_start=True)
    elif ns.move_to_end:
        move = SpecSheetMove(to_end=True)
    elif ns.move_before is not None:
        move = SpecSheetMove(before=ns.move_before)
    elif ns.move_after is not None:
        move = SpecSheetMove(after=ns.move_after)

    return SpecExportOptions(
        worksheet_name=ns.worksheet_name,
        title=ns.title,
        start_row=ns.start_row,
        start_column=ns.start_column,
        no_header=ns.no_header,
        exclude_fields=tuple(ns.exclude),
        num_format=ns.num_format,
        no_number_conversion=tuple(ns.no_number_conversion),
        no_hyperlink_conversion=tuple(ns.no_hyperlink_conversion),
        number_locale=ns.number_locale,
        append=ns.append,
        clear_sheet=ns.clear_sheet,
        move=move,
        range_name=ns.range_name,
        auto_name_range=ns.auto_name_range,
        table_name=ns.table_name,
        table_style=ns.table_style,
        pivot_rows=tuple(ns.pivot_rows),
        pivot_columns=tuple(ns.pivot_columns),
        pivot_data=dict(ns.pivot_data),
        pivot_filter=tuple(ns.pivot_filter),
        include_pivot_chart=ns.include_pivot_chart,
        pivot_chart=SpecPivotChart(chart_type=EnumChartType(ns.pivot_chart_type)),
        auto_filter=ns.auto_filter,
        freeze_top_row=ns.freeze_top_row,
        freeze_first_column=ns.freeze_first_column,
        freeze_top_row_first_column=ns.freeze_top_row_first_column,
        freeze_pane=None if ns.freeze_pane is None else tuple(ns.freeze_pane),
        bold_top_row=ns.bold_top_row,
        autosize=ns.autosize,
        hidden=ns.hidden,
        activate=ns.activate,
        conditional_formats=tuple(create_conditional_text(_t) for _t in ns.conditional_text),
        password=ns.password,
    )


# #endregion
################################################################################
# #region Main
def main(argv: Sequence[str] | None = None) -> int:
    ns = build_parser().parse_args(argv)
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if ns.verbose else "WARNING")
    headings = CliHeadings()

    try:
        df = read_input(ns.input, fmt=ns.format, separator=ns.separator)
    except (ValueError, OSError, pl.exceptions.PolarsError) as exc:
        headings.console.print(f"[bold red]Cannot read input:[/bold red] {escape(str(exc))}")
        return 2

    try:
        report = export(df, ns.output, build_options(ns))
    except ExportError as exc:
        headings.console.print(f"[bold red]Export failed:[/bold red] {escape(str(exc))}")
        return 1

    if not ns.quiet:
        headings.print_report(report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())


# #endregion
################################################################################
