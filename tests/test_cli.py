from __future__ import annotations

import sys
from pathlib import Path

import pytest
from openpyxl import load_workbook

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from xlexport.cli.command import build_options, build_parser, main  # noqa: E402
from xlexport.spec import SpecSheetMove  # noqa: E402


@pytest.fixture()
def csv_path(tmp_path: Path) -> Path:
    path = tmp_path / "in.csv"
    path.write_text(
        "Name,Score,Code,Region\nA,1.5,007,East\nB,2,010,West\nC,4,011,East\n",
        encoding="utf-8",
    )
    return path


def test_parser_maps_flags_to_options(csv_path: Path, tmp_path: Path) -> None:
    ns = build_parser().parse_args(
        [
            str(csv_path),
            str(tmp_path / "out.xlsx"),
            "--move-before",
            "Other",
            "--freeze-pane",
            "3",
            "2",
            "--pivot-data",
            "Score=sum",
            "Code=count",
            "--no-number-conversion",
            "Code",
        ]
    )
    opts = build_options(ns)
    assert opts.move == SpecSheetMove(before="Other")
    assert opts.freeze_pane == (3, 2)
    assert dict(opts.pivot_data) == {"Score": "sum", "Code": "count"}
    assert opts.no_number_conversion == ("Code",)
    assert ns.input == csv_path.resolve()


@pytest.mark.parametrize(
    "extra",
    [
        ["--start-row", "0"],
        ["--pivot-data", "Score"],
        ["--freeze-top-row", "--freeze-first-column"],
        ["--move-to-start", "--move-to-end"],
    ],
)
def test_parser_rejects_bad_flags(csv_path: Path, tmp_path: Path, extra: list[str]) -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([str(csv_path), str(tmp_path / "out.xlsx"), *extra])


def test_parser_rejects_unknown_extensions(tmp_path: Path) -> None:
    path = tmp_path / "in.txt"
    path.write_text("a\n1\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        build_parser().parse_args([str(path), str(tmp_path / "out.xlsx")])
    with pytest.raises(SystemExit):
        build_parser().parse_args([str(tmp_path / "missing.csv"), str(tmp_path / "out.xlsx")])


def test_main_exports_csv(
    csv_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    out = tmp_path / "nested" / "out.xlsx"
    rc = main(
        [
            str(csv_path),
            str(out),
            "--no-number-conversion",
            "Code",
            "--table-name",
            "Scores",
            "--pivot-rows",
            "Region",
            "--pivot-data",
            "Score=sum",
        ]
    )
    assert rc == 0
    assert "A1:D4" in capsys.readouterr().out

    wb = load_workbook(out)
    ws = wb["Sheet1"]
    assert list(ws.iter_rows(values_only=True)) == [
        ("Name", "Score", "Code", "Region"),
        ("A", 1.5, "007", "East"),
        ("B", 2, "010", "West"),
        ("C", 4, "011", "East"),
    ]
    assert list(ws.tables) == ["Scores"]
    ws_pivot = wb["Sheet1PivotTable"]
    assert ws_pivot["A2"].value == "East"
    assert ws_pivot["B2"].value == pytest.approx(5.5)


def test_main_reports_configuration_conflicts(
    csv_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    out = tmp_path / "out.xlsx"
    rc = main([str(csv_path), str(out), "--append", "--clear-sheet", "-q"])
    assert rc == 1
    assert "Export failed" in capsys.readouterr().out
    assert not out.exists()
