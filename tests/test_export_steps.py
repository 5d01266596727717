from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest
from openpyxl import load_workbook

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from xlexport import (  # noqa: E402
    ExportPasswordError,
    SpecCellFormat,
    SpecConditionalFormat,
    SpecRangeStyle,
    create_chart_definition,
    create_conditional_text,
    export,
    open_workbook,
)

RECORDS = [
    {"Name": "A", "Score": 1},
    {"Name": "B", "Score": 2},
    {"Name": "C", "Score": 3},
]


def _destinations(path: Path, name: str) -> list[tuple[str, str]]:
    return list(load_workbook(path).defined_names[name].destinations)


################################################################################
# #region NamedRanges
def test_range_name_covers_the_whole_block(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, range_name="Data")
    assert _destinations(path, "Data") == [("Sheet1", "$A$1:$B$4")]


def test_range_name_is_updated_not_duplicated(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS[:1], path, range_name="Data")
    export(RECORDS, path, range_name="data")

    wb = load_workbook(path)
    l_names = [_n for _n in wb.defined_names if _n.lower() == "data"]
    assert l_names == ["Data"]
    assert _destinations(path, "Data") == [("Sheet1", "$A$1:$B$4")]


def test_auto_name_range_names_each_column(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, auto_name_range=True)
    assert _destinations(path, "Name") == [("Sheet1", "$A$2:$A$4")]
    assert _destinations(path, "Score") == [("Sheet1", "$B$2:$B$4")]


def test_illegal_range_name_is_sanitized_with_a_warning(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export(RECORDS, path, range_name="my range")
    assert "my_range" in load_workbook(path).defined_names
    assert any("'my range'" in _w for _w in report.warnings)


# #endregion
################################################################################
# #region Tables
def test_table_is_registered_over_the_block(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, table_name="Scores")
    ws = load_workbook(path)["Sheet1"]
    assert list(ws.tables) == ["Scores"]
    assert ws.tables["Scores"].ref == "A1:B4"


def test_table_grows_with_appended_rows(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, table_name="Scores")
    export([{"Name": "D", "Score": 4}], path, append=True, table_name="Scores")

    ws = load_workbook(path)["Sheet1"]
    assert list(ws.tables) == ["Scores"]
    assert ws.tables["Scores"].ref == "A1:B5"


def test_table_update_keeps_a_single_table_across_reruns(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, table_name="Scores")
    report = export([*RECORDS, {"Name": "D", "Score": 4}], path, table_name="scores")

    ws = load_workbook(path)["Sheet1"]
    assert report.warnings == []
    assert list(ws.tables) == ["Scores"]
    assert ws.tables["Scores"].ref == "A1:B5"


def test_table_without_header_is_skipped_but_export_is_saved(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export(RECORDS, path, no_header=True, table_name="Scores")
    assert path.exists()
    assert not load_workbook(path)["Sheet1"].tables
    assert any("Table skipped" in _w for _w in report.warnings)


def test_table_name_taken_on_another_sheet_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, worksheet_name="One", table_name="Scores")
    report = export(RECORDS, path, worksheet_name="Two", table_name="Scores")
    wb = load_workbook(path)
    assert list(wb["One"].tables) == ["Scores"]
    assert not wb["Two"].tables
    assert any("already exists" in _w for _w in report.warnings)


def test_auto_filter_alone_and_next_to_a_table(tmp_path: Path) -> None:
    path = tmp_path / "plain.xlsx"
    export(RECORDS, path, auto_filter=True)
    assert load_workbook(path)["Sheet1"].auto_filter.ref == "A1:B4"

    path = tmp_path / "table.xlsx"
    report = export(RECORDS, path, auto_filter=True, table_name="Scores")
    assert not load_workbook(path)["Sheet1"].auto_filter.ref
    assert any("Auto-filter skipped" in _w for _w in report.warnings)


# #endregion
################################################################################
# #region View
@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({"freeze_top_row": True}, "A2"),
        ({"freeze_top_row": True, "title": "T"}, "A3"),
        ({"freeze_first_column": True}, "B1"),
        ({"freeze_top_row_first_column": True}, "B2"),
        ({"freeze_pane": (3, 2)}, "B3"),
        ({"freeze_top_row": True, "freeze_pane": (5, 5)}, "A2"),
    ],
)
def test_freeze_panes(tmp_path: Path, overrides: dict[str, Any], expected: str) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, **overrides)
    assert load_workbook(path)["Sheet1"].freeze_panes == expected


def test_freeze_top_row_without_a_header_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export([1, 2, 3], path, freeze_top_row=True)
    assert load_workbook(path)["Sheet1"].freeze_panes is None
    assert any("Freeze top row skipped" in _w for _w in report.warnings)


def test_bold_top_row(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, bold_top_row=True)
    ws = load_workbook(path)["Sheet1"]
    assert ws["A1"].font.b and ws["B1"].font.b
    assert not ws["A2"].font.b


def test_autosize_respects_min_and_padding(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export([{"Id": 1, "Description": "x" * 30}], path, autosize=True)
    ws = load_workbook(path)["Sheet1"]
    assert ws.column_dimensions["A"].width == 8
    assert ws.column_dimensions["B"].width == 32


def test_hidden_sheet_and_activation(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, worksheet_name="A")
    export(RECORDS, path, worksheet_name="B", hidden=True)
    export(RECORDS, path, worksheet_name="C", activate=True)

    wb = load_workbook(path)
    assert wb["B"].sheet_state == "hidden"
    assert wb["A"].sheet_state == "visible"
    assert wb.active.title == "C"


def test_hide_and_unhide_by_pattern(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    with open_workbook(path) as book:
        export(RECORDS, book, worksheet_name="Tmp1")
        export(RECORDS, book, worksheet_name="Tmp2")
        export(
            RECORDS,
            book,
            worksheet_name="Main",
            hide_sheets=("Tmp*",),
            unhide_sheets=("Tmp2",),
        )
    wb = load_workbook(path)
    assert [_ws.sheet_state for _ws in wb.worksheets] == ["hidden", "visible", "visible"]


def test_hiding_everything_keeps_the_target_visible(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export(RECORDS, path, hidden=True)
    assert load_workbook(path)["Sheet1"].sheet_state == "visible"
    assert any("visible" in _w for _w in report.warnings)


# #endregion
################################################################################
# #region Charts
def test_chart_is_anchored_right_of_the_data(tmp_path: Path) -> None:
    report = export(
        RECORDS,
        tmp_path / "out.xlsx",
        charts=(create_chart_definition("column", x_field="Name", y_fields="Score", title="Scores"),),
        pass_thru=True,
    )
    ws = report.workbook.wb["Sheet1"]
    assert len(ws._charts) == 1
    assert ws._charts[0].anchor == "D1"
    assert len(ws._charts[0].series) == 1
    report.workbook.close()


def test_chart_without_series_uses_the_remaining_columns(tmp_path: Path) -> None:
    report = export(
        [{"Month": "Jan", "Sales": 1, "Cost": 2}],
        tmp_path / "out.xlsx",
        charts=(create_chart_definition("line"),),
        pass_thru=True,
    )
    chart = report.workbook.wb["Sheet1"]._charts[0]
    assert len(chart.series) == 2
    report.workbook.close()


def test_rerun_replaces_the_chart_at_the_same_anchor(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    chart = create_chart_definition("bar", x_field="Name", y_fields=["Score"])
    export(RECORDS, path, charts=(chart,))
    export(RECORDS, path, charts=(chart,))
    assert len(load_workbook(path)["Sheet1"]._charts) == 1


def test_chart_on_unknown_field_is_reported(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export(
        RECORDS, path, charts=(create_chart_definition("pie", x_field="Name", y_fields="Nope"),)
    )
    assert path.exists()
    assert any("Chart #1 skipped" in _w for _w in report.warnings)


# #endregion
################################################################################
# #region ConditionalFormats
def test_conditional_text_targets_the_data_rows(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, conditional_formats=(create_conditional_text("B"),))

    ws = load_workbook(path)["Sheet1"]
    l_blocks = list(ws.conditional_formatting)
    assert [str(_cf.sqref) for _cf in l_blocks] == ["A2:B4"]
    assert l_blocks[0].rules[0].type == "containsText"
    assert l_blocks[0].rules[0].text == "B"


def test_conditional_rules_on_a_field(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    report = export(
        RECORDS,
        path,
        conditional_formats=(
            SpecConditionalFormat(
                rule_type="cell_is",
                field_name="Score",
                operator=">=",
                values=(2,),
                fmt=SpecCellFormat(bold=True),
            ),
            SpecConditionalFormat(rule_type="color_scale", field_name="Score"),
            SpecConditionalFormat(rule_type="data_bar", field_name="Score", colors=("blue",)),
            SpecConditionalFormat(rule_type="cell_is", field_name="Score", operator="between", values=(1,)),
        ),
    )
    ws = load_workbook(path)["Sheet1"]
    l_rules = [_r for _cf in ws.conditional_formatting for _r in _cf.rules]
    assert sorted(_r.type for _r in l_rules) == ["cellIs", "colorScale", "dataBar"]
    assert {str(_cf.sqref) for _cf in ws.conditional_formatting} == {"B2:B4"}
    assert len(report.warnings) == 1
    assert "Conditional format #4" in report.warnings[0]


def test_create_conditional_text_rejects_unknown_condition() -> None:
    with pytest.raises(ValueError):
        create_conditional_text("x", condition="sounds_like")


# #endregion
################################################################################
# #region Styles
def test_range_style_on_a_field(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(
        RECORDS,
        path,
        range_styles=(
            SpecRangeStyle(fmt=SpecCellFormat(bg_color="yellow"), field_name="Score", width=20),
            SpecRangeStyle(fmt=SpecCellFormat(italic=True), address="A1:A1"),
        ),
    )
    ws = load_workbook(path)["Sheet1"]
    assert ws["B2"].fill.fgColor.rgb.endswith("FFFF00")
    assert ws["B4"].fill.fgColor.rgb.endswith("FFFF00")
    assert ws["B1"].fill.fill_type is None
    assert ws.column_dimensions["B"].width == 20
    assert ws["A1"].font.i


class _BoldLargeScores:
    def create_cell_format_override(
        self, *, row_idx: int, col_idx: int, value: Any
    ) -> SpecCellFormat | None:
        if col_idx == 1 and isinstance(value, int) and value > 1:
            return SpecCellFormat(bold=True)
        return None


class _RedFirstRow:
    def create_cell_format_override(
        self, *, row_idx: int, col_idx: int, value: Any
    ) -> SpecCellFormat | None:
        return SpecCellFormat(font_color="red") if row_idx == 0 else None


def test_addons_see_data_region_coordinates(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, title="T", addons=(_BoldLargeScores(), _RedFirstRow()))

    ws = load_workbook(path)["Sheet1"]
    # title in row 1, header in row 2, data from row 3
    assert not ws["B3"].font.b
    assert ws["B4"].font.b and ws["B5"].font.b
    assert ws["A3"].font.color.rgb.endswith("FF0000")
    assert not ws["B2"].font.b


# #endregion
################################################################################
# #region Protection
def test_password_protects_sheet_and_structure(tmp_path: Path) -> None:
    path = tmp_path / "out.xlsx"
    export(RECORDS, path, password="s3cret")
    wb = load_workbook(path)
    assert wb["Sheet1"].protection.sheet
    assert wb["Sheet1"].protection.password
    assert wb.security is not None and wb.security.lockStructure


def test_password_failure_is_fatal_and_saves_nothing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _boom(self: Any, value: str = "", already_hashed: bool = False) -> None:
        raise RuntimeError("no protection today")

    monkeypatch.setattr(
        "openpyxl.worksheet.protection.SheetProtection.set_password", _boom
    )
    path = tmp_path / "out.xlsx"
    with pytest.raises(ExportPasswordError):
        export(RECORDS, path, password="s3cret")
    assert not path.exists()


# #endregion
################################################################################
