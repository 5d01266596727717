from dataclasses import dataclass

from rich.console import Console
from rich.style import Style
from rich.table import Table

from ..spec import SpecExportReport


@dataclass(frozen=True, slots=True)
class SpecCliTheme:
    h1: str = "#7C3AED"
    h2: str = "#00FFFF"
    warn: str = "#FACC15"


class CliHeadings:
    def __init__(
        self, *, console: Console | None = None, theme: SpecCliTheme | None = None
    ):
        self.console = console or Console()
        self.theme = theme or SpecCliTheme()

    def h1(self, text: str) -> None:
        self.console.rule(
            f"[bold]{text}[/bold]",
            style=Style(color=self.theme.h1, bold=True),
            characters="=",
        )

    def h2(self, text: str) -> None:
        self.console.rule(text, style=Style(color=self.theme.h2), characters="─")

    def print_report(self, report: SpecExportReport) -> None:
        self.h1(f"xlexport: {report.sheet_name}")
        table = Table(show_header=False, box=None, pad_edge=False)
        table.add_column(style="bold")
        table.add_column()
        table.add_row("Workbook", str(report.path) if report.path else "-")
        table.add_row("Worksheet", report.sheet_name)
        table.add_row("Range", report.address or "-")
        table.add_row("Rows", str(report.rows_written))
        table.add_row("Columns", ", ".join(report.header) or "-")
        self.console.print(table)

        if report.warnings:
            self.h2(f"Warnings ({len(report.warnings)})")
            for _msg in report.warnings:
                self.console.print(f"- {_msg}", style=Style(color=self.theme.warn), markup=False)
