from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import polars as pl
import pytest
from openpyxl import load_workbook

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from xlexport import (  # noqa: E402
    ExportConfigurationConflict,
    ExportWriteError,
    SpecExportOptions,
    SpecSheetMove,
    XlsxWorkbook,
    export,
    open_workbook,
)

RECORDS = [
    {"Name": "A", "Score": 1},
    {"Name": "B", "Score": 2},
    {"Name": "C", "Score": 3},
]


def _rows(path: Path, sheet: str = "Sheet1") -> list[tuple]:
    return list(load_workbook(path)[sheet].iter_rows(values_only=True))


def test_header_then_records_in_input_order(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export(RECORDS, path)

    assert _rows(path) == [("Name", "Score"), ("A", 1), ("B", 2), ("C", 3)]
    assert load_workbook(path).sheetnames == ["Sheet1"]
    assert report.address == "A1:B4"
    assert report.header == ("Name", "Score")
    assert report.rows_written == 3
    assert report.warnings == []
    assert report.workbook is None


def test_options_object_and_overrides_combine(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    opts = SpecExportOptions(worksheet_name="Data", start_row=3, start_column=2)
    report = export(RECORDS[:1], path, opts, no_header=True)

    ws = load_workbook(path)["Data"]
    assert ws["B3"].value == "A"
    assert ws["C3"].value == 1
    assert report.address == "B3:C3"


def test_unknown_override_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ExportConfigurationConflict):
        export(RECORDS, tmp_path / "out.xlsx", not_an_option=True)


def test_scalars_stack_in_the_start_column(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export([-1, 668, -0.5], path, num_format="+0.0;-0.0;0")

    ws = load_workbook(path)["Sheet1"]
    assert [ws.cell(row=_r, column=1).value for _r in (1, 2, 3)] == [-1, 668, -0.5]
    assert ws["A1"].number_format == "+0.0;-0.0;0"
    assert ws.max_column == 1
    assert report.header == ()
    assert report.address == "A1:A3"


def test_single_mapping_is_one_record(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export({"Only": "row"}, path)
    assert _rows(path) == [("Only",), ("row",)]


def test_missing_fields_are_blank_and_extra_fields_ignored(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export([{"a": 1, "b": 2}, {"b": 3, "c": 4}], path)
    assert _rows(path) == [("a", "b"), (1, 2), (None, 3)]


def test_excluded_fields_are_left_out(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export([{"Id": 1, "TmpX": 2, "Name": "n"}], path, exclude_fields=("Tmp*",))
    assert _rows(path) == [("Id", "Name"), (1, "n")]


def test_dataclass_records_include_properties(tmp_path: Path) -> None:
    @dataclass
    class Item:
        name: str
        qty: int

        @property
        def double(self) -> int:
            return self.qty * 2

    path = tmp_path / "out.xlsx"
    export([Item("x", 2), Item("y", 5)], path)
    assert _rows(path) == [("name", "qty", "double"), ("x", 2, 4), ("y", 5, 10)]


def test_polars_frame_is_exported_row_by_row(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    df = pl.DataFrame({"k": ["a", "b"], "v": [1.5, 2.5]})
    export(df, path)
    assert _rows(path) == [("k", "v"), ("a", 1.5), ("b", 2.5)]


def test_value_kinds_land_with_their_cell_types(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(
        [
            {
                "When": datetime(2024, 5, 6, 7, 8),
                "Code": "007",
                "Amount": "1.555,83",
                "Sum": "=1+2",
                "Link": "https://example.com/page",
                "Eq": "=not a formula",
            }
        ],
        path,
        number_locale="de_DE",
        no_number_conversion=("Code", "Eq"),
    )
    ws = load_workbook(path)["Sheet1"]

    assert ws["A2"].value == datetime(2024, 5, 6, 7, 8)
    assert ws["A2"].number_format == "m/d/yy h:mm"
    assert ws["B2"].value == "007"
    assert ws["B2"].data_type == "s"
    assert ws["C2"].value == pytest.approx(1555.83)
    assert ws["C2"].data_type == "n"
    assert ws["D2"].value == "=1+2"
    assert ws["D2"].data_type == "f"
    assert ws["E2"].hyperlink.target == "https://example.com/page"
    assert ws["E2"].font.u == "single"
    assert ws["F2"].value == "=not a formula"
    assert ws["F2"].data_type == "s"


def test_title_sits_above_the_range(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export(RECORDS, path, title="Quarterly")

    ws = load_workbook(path)["Sheet1"]
    assert ws["A1"].value == "Quarterly"
    assert ws["A1"].font.b is True
    assert ws["A1"].font.sz == 22
    assert ws["A2"].value == "Name"
    assert report.address == "A2:B5"


def test_append_reuses_the_existing_header(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export([{"Id": 1, "Name": "a"}], path)
    report = export([{"Id": 2, "Name": "x", "Extra": "y"}], path, append=True)

    ws = load_workbook(path)["Sheet1"]
    assert list(ws.iter_rows(values_only=True)) == [("Id", "Name"), (1, "a"), (2, "x")]
    assert ws.max_column == 2
    assert report.header == ("Id", "Name")
    assert report.address == "A1:B3"
    assert report.rows_written == 1


def test_append_with_title_warns(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export([{"Id": 1}], path)
    report = export([{"Id": 2}], path, append=True, title="ignored")
    assert _rows(path) == [("Id",), (1,), (2,)]
    assert any("Title is ignored" in _w for _w in report.warnings)


def test_append_below_a_title_warns_about_a_single_field_header(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS[:1], path, title="Report")

    report = export(RECORDS[1:2], path, append=True)
    assert report.header == ("Report",)
    assert any("single field" in _w for _w in report.warnings)

    report = export(RECORDS[2:], path, append=True, start_row=2)
    assert report.header == ("Name", "Score")
    assert not any("single field" in _w for _w in report.warnings)
    assert _rows(path)[-1] == ("C", 3)


def test_append_to_an_empty_sheet_writes_a_header(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS[:1], path, append=True)
    assert _rows(path) == [("Name", "Score"), ("A", 1)]


def test_append_and_clear_conflict_before_any_io(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    with pytest.raises(ExportConfigurationConflict):
        export(RECORDS, path, append=True, clear_sheet=True)
    assert not path.exists()

    export(RECORDS, path)
    c_before = path.read_bytes()
    with pytest.raises(ExportConfigurationConflict):
        export(RECORDS, path, append=True, clear_sheet=True)
    assert path.read_bytes() == c_before


def test_conflicting_moves_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ExportConfigurationConflict):
        export(
            RECORDS,
            tmp_path / "out.xlsx",
            move=SpecSheetMove(to_start=True, after="Other"),
        )


def test_clear_sheet_starts_over(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path)
    export([{"Other": "z"}], path, clear_sheet=True)
    assert _rows(path) == [("Other",), ("z",)]


def test_rewrite_without_clear_overwrites_in_place(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path)
    export([{"Name": "Z", "Score": 9}], path)
    assert _rows(path) == [("Name", "Score"), ("Z", 9), ("B", 2), ("C", 3)]


def test_other_sheets_survive(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, worksheet_name="One")
    export(RECORDS, path, worksheet_name="Two")
    wb = load_workbook(path)
    assert wb.sheetnames == ["One", "Two"]
    assert wb["One"]["A2"].value == "A"


@pytest.mark.parametrize(
    ("move", "expected"),
    [
        (SpecSheetMove(to_start=True), ["C", "A", "B"]),
        (SpecSheetMove(to_end=True), ["A", "B", "C"]),
        (SpecSheetMove(before="B"), ["A", "C", "B"]),
        (SpecSheetMove(after="A"), ["A", "C", "B"]),
    ],
)
def test_sheet_moves(tmp_path: Path, move: SpecSheetMove, expected: list[str]) -> None:
    path = tmp_path / "out.xlsx"
    with open_workbook(path) as book:
        export(RECORDS, book, worksheet_name="A")
        export(RECORDS, book, worksheet_name="B")
        export(RECORDS, book, worksheet_name="C", move=move)
    assert load_workbook(path).sheetnames == expected


def test_move_relative_to_missing_sheet_warns(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, worksheet_name="A")
    report = export(RECORDS, path, worksheet_name="B", move=SpecSheetMove(before="Nope"))
    assert load_workbook(path).sheetnames == ["A", "B"]
    assert any("Nope" in _w for _w in report.warnings)


def test_illegal_sheet_name_is_sanitized(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export(RECORDS, path, worksheet_name="a/b:c" + "x" * 40)
    assert report.sheet_name == ("a_b_c" + "x" * 40)[:31]
    assert load_workbook(path).sheetnames == [report.sheet_name]
    assert len(report.warnings) == 1


def test_write_failure_names_the_cell_and_saves_nothing(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    with pytest.raises(ExportWriteError) as exc_info:
        export([{"Id": 1, "Note": "bad\x01value"}], path, worksheet_name="Data")

    err = exc_info.value
    assert err.field_name == "Note"
    assert err.sheet_name == "Data"
    assert (err.row, err.col) == (2, 2)
    assert "Data" in str(err) and "Note" in str(err) and str(path) in str(err)
    assert not path.exists()


def test_overlong_digit_text_is_written_as_text(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    c_digits = "9" * 5000
    report = export([{"Id": c_digits}], path)
    assert report.warnings == []
    assert load_workbook(path)["Sheet1"]["A2"].value == c_digits


def test_handle_is_left_open_and_unsaved(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    book = open_workbook(path)
    report = export(RECORDS, book)
    assert not path.exists()
    assert report.workbook is book
    assert not book.if_closed

    book.save()
    book.close()
    assert _rows(path)[0] == ("Name", "Score")
    with pytest.raises(ValueError):
        export(RECORDS, book)


def test_pass_thru_returns_the_open_workbook(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export(RECORDS, path, pass_thru=True)
    assert not path.exists()
    assert isinstance(report.workbook, XlsxWorkbook)

    report.workbook.wb["Sheet1"]["D1"] = "added later"
    report.workbook.save()
    report.workbook.close()
    assert load_workbook(path)["Sheet1"]["D1"].value == "added later"


def test_context_manager_does_not_save_on_error(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    with pytest.raises(RuntimeError):
        with open_workbook(path) as book:
            export(RECORDS, book)
            raise RuntimeError("boom")
    assert not path.exists()
    assert book.if_closed
