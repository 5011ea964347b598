import io
import zipfile
from datetime import timedelta

import pytest

from conftest import (
    CELL_CHAR_PR, LEGEND_CHAR_PR, TEMPLATE_CELLS,
    build_section_xml, placeholder, write_hwpx,
)
from report_exporter_hwpx import (
    HP, HwpxTemplateEngine, HwpxWeeklyReportExporter,
    TemplateAssetError, TemplateLayoutError, TemplateNotFoundError, TemplatePartMissingError,
    entry_lines, export_weekly_hwpx, hwpx_filename, required_addresses,
)
from models import UserProfile
from report_output import HWPX_MEDIA_TYPE, ExportedFile


def _reload(tmp_path, content: bytes) -> HwpxTemplateEngine:
    path = tmp_path / "rendered.hwpx"
    path.write_bytes(content)
    return HwpxTemplateEngine(str(path)).load()


def _render(tmp_path, template, week_start, entries=(), plan=None, note=None, profile=None):
    exported = export_weekly_hwpx(
        week_start, entries, plan, note, profile,
        template_path=template, return_file=True,
    )
    return _reload(tmp_path, exported.content)


# -------------------------
# engine
# -------------------------

def test_set_cell_text_replaces_placeholder(hwpx_template, tmp_path):
    engine = HwpxTemplateEngine(hwpx_template).load()
    assert engine.cell_text(8, 3) == placeholder(8, 3)

    assert engine.set_cell_text(8, 3, ["첫째", "둘째"])
    reloaded = _reload(tmp_path, engine.render())

    assert reloaded.cell_text(8, 3) == "첫째\n둘째"
    assert placeholder(8, 3) not in reloaded.cell_text(8, 3)


def test_set_cell_text_on_missing_cell_is_noop(hwpx_template):
    engine = HwpxTemplateEngine(hwpx_template).load()
    assert engine.set_cell_text(99, 99, "x") is False


def test_empty_text_keeps_one_paragraph(hwpx_template):
    engine = HwpxTemplateEngine(hwpx_template).load()
    engine.set_cell_text(3, 1, [])

    paragraphs = engine.cell(3, 1).findall(".//" + HP + "p")
    assert len(paragraphs) == 1
    assert engine.cell_text(3, 1) == ""


def test_written_paragraphs_use_percent_spacing_without_layout_cache(hwpx_template):
    engine = HwpxTemplateEngine(hwpx_template).load()
    engine.set_cell_text(4, 2, "a\nb")

    for p in engine.cell(4, 2).iter(HP + "p"):
        ppr = p.find(HP + "pPr")
        assert ppr.get("lineSpacingType") == "Percent"
        assert ppr.get("lineSpacing") == "160"
        assert p.find(HP + "linesegarray") is None


def test_namespace_prefixes_survive(hwpx_template):
    engine = HwpxTemplateEngine(hwpx_template).load()
    engine.set_cell_text(3, 1, "x")

    with zipfile.ZipFile(io.BytesIO(engine.render())) as zf:
        section = zf.read("Contents/section0.xml").decode("utf-8")
    assert "<hp:tc" in section
    assert "ns0:" not in section


# -------------------------
# template problems
# -------------------------

def test_required_addresses_fit_template():
    present = {(r, c) for r, cols in TEMPLATE_CELLS.items() for c in cols}
    assert set(required_addresses()) <= present
    assert (6, 1) not in required_addresses()
    assert (11, 1) not in required_addresses()


def test_validate_passes_on_template(hwpx_template):
    HwpxWeeklyReportExporter(hwpx_template).validate()


def test_validate_reports_missing_cells(tmp_path):
    cells = {r: [c for c in cols if (r, c) != (16, 10)] for r, cols in TEMPLATE_CELLS.items()}
    path = write_hwpx(tmp_path / "broken.hwpx", build_section_xml(cells))

    with pytest.raises(TemplateLayoutError) as exc:
        HwpxWeeklyReportExporter(path).validate()
    assert exc.value.missing == [(16, 10)]


def test_missing_template_file(tmp_path, week_start, profile):
    missing = str(tmp_path / "nope.hwpx")
    out_dir = tmp_path / "out"

    with pytest.raises(TemplateNotFoundError) as exc:
        export_weekly_hwpx(week_start, [], profile=profile, template_path=missing, out_dir=out_dir)
    assert isinstance(exc.value, FileNotFoundError)
    assert isinstance(exc.value, TemplateAssetError)
    assert not out_dir.exists()


def test_missing_section_part(tmp_path, week_start):
    path = write_hwpx(tmp_path / "empty.hwpx", None)
    with pytest.raises(TemplatePartMissingError):
        export_weekly_hwpx(week_start, [], template_path=path, return_file=True)


def test_not_a_zip(tmp_path):
    path = tmp_path / "fake.hwpx"
    path.write_bytes(b"not a zip")
    with pytest.raises(TemplateAssetError):
        HwpxTemplateEngine(str(path)).load()


# -------------------------
# weekly report
# -------------------------

def test_header_cells(hwpx_template, tmp_path, week_start, profile):
    engine = _render(tmp_path, hwpx_template, week_start, profile=profile)

    assert engine.cell_text(0, 0) == "6월 2주"
    assert engine.cell_text(0, 2) == "2024. 6. 2. ~ 6. 8."
    assert engine.cell_text(0, 8) == "청년부"
    assert engine.cell_text(0, 12) == "김사역"
    assert [engine.cell_text(2, c) for c in range(1, 8)] == [
        "6.2(주일)", "6.3(월)", "6.4(화)", "6.5(수)", "6.6(목)", "6.7(금)", "6.8(토)",
    ]


def test_timeline_entries(hwpx_template, tmp_path, week_start, make_record, profile):
    monday = week_start + timedelta(days=1)
    records = [
        make_record(monday, "09:00", "업무", "회의", "Staff sync"),
        make_record(monday, "09:00", "심방", "방문심방", "김집사 댁\n기도 요청"),
        make_record(week_start + timedelta(days=6), "20:00", "심방", "전화심방", "안부"),
    ]
    engine = _render(tmp_path, hwpx_template, week_start, records, profile=profile)

    assert engine.cell_text(3, 2) == "• Staff sync\n￭ 김집사 댁\n  기도 요청"
    assert engine.cell_text(14, 7) == "￭ 안부"
    assert engine.cell_text(3, 1) == ""
    assert engine.cell_text(9, 4) == ""


def test_timeline_style_follows_legend(hwpx_template, tmp_path, week_start, make_record):
    record = make_record(week_start, "10:00", content="예배 준비")
    engine = _render(tmp_path, hwpx_template, week_start, [record])

    for row, col in [(4, 1), (5, 3)]:
        runs = list(engine.cell(row, col).iter(HP + "run"))
        assert runs
        assert {r.get("charPrIDRef") for r in runs} == {LEGEND_CHAR_PR}


def test_timeline_style_falls_back_to_first_slot_cell(tmp_path, week_start, make_record):
    template = write_hwpx(tmp_path / "nolegend.hwpx", build_section_xml(legend=None))
    engine = _render(tmp_path, template, week_start, [make_record(week_start, "10:00")])

    runs = list(engine.cell(4, 1).iter(HP + "run"))
    assert {r.get("charPrIDRef") for r in runs} == {CELL_CHAR_PR}


def test_meal_rows_are_untouched(hwpx_template, tmp_path, week_start, make_record):
    records = [make_record(week_start, "11:40"), make_record(week_start, "17:00")]
    engine = _render(tmp_path, hwpx_template, week_start, records)

    assert engine.cell_text(6, 1) == placeholder(6, 1)
    assert engine.cell_text(11, 1) == placeholder(11, 1)


def test_stats_cells(hwpx_template, tmp_path, week_start, make_record):
    day2 = week_start + timedelta(days=2)
    records = [
        make_record(day2, "09:00", "심방", "방문심방"),
        make_record(day2, "10:00", "심방", "방문심방"),
        make_record(day2, "05:00", "심방", "카페심방"),
    ]
    engine = _render(tmp_path, hwpx_template, week_start, records)

    assert engine.cell_text(16, 3) == "방문심방 : 2 회"
    assert engine.cell_text(17, 3) == "카페심방 : 1 회"
    assert engine.cell_text(18, 3) == "전화심방 : 0 회"
    assert engine.cell_text(16, 10) == "방문심방 : 총 2 회"
    assert engine.cell_text(17, 10) == "카페심방 : 총 1 회"


def test_plan_and_footer(hwpx_template, tmp_path, week_start, plan, note):
    engine = _render(tmp_path, hwpx_template, week_start, plan=plan, note=note)

    assert [engine.cell_text(row, 11) for row in range(3, 11)] == [
        "주일 예배", "휴무", "", "수요 예배 준비", "", "", "", "수련회 답사",
    ]
    assert engine.cell_text(19, 1) == "청년부 수련회 장소 확정"
    assert engine.cell_text(20, 9) == "월. 화. 목\n(3회 참석)"


def test_blank_plan_and_footer_clear_placeholders(hwpx_template, tmp_path, week_start):
    engine = _render(tmp_path, hwpx_template, week_start)

    assert engine.cell_text(3, 11) == ""
    assert engine.cell_text(19, 1) == ""
    assert engine.cell_text(20, 9) == ""


def test_other_parts_are_copied_as_is(hwpx_template, week_start):
    exported = export_weekly_hwpx(week_start, [], template_path=hwpx_template, return_file=True)

    with zipfile.ZipFile(hwpx_template) as src, \
            zipfile.ZipFile(io.BytesIO(exported.content)) as out:
        assert out.namelist() == src.namelist()
        assert out.getinfo("mimetype").compress_type == zipfile.ZIP_STORED
        for name in ("mimetype", "version.xml", "Contents/header.xml"):
            assert out.read(name) == src.read(name)


def test_export_file_naming_and_delivery(hwpx_template, tmp_path, week_start, profile):
    exported = export_weekly_hwpx(week_start, [], profile=profile, template_path=hwpx_template, return_file=True)
    assert isinstance(exported, ExportedFile)
    assert exported.filename == "6월_2주_주간사역일지_김사역.hwpx"
    assert exported.media_type == HWPX_MEDIA_TYPE

    out_dir = tmp_path / "out"
    path = export_weekly_hwpx(week_start, [], profile=profile, template_path=hwpx_template, out_dir=out_dir)
    assert path == out_dir / exported.filename
    assert zipfile.is_zipfile(path)


def test_filename_falls_back_for_blank_name(week_start):
    assert hwpx_filename(week_start, UserProfile(name=" ", department="")) == "6월_2주_주간사역일지_사역자.hwpx"


def test_entry_lines_markers(week_start, make_record):
    records = [
        make_record(week_start, category="심방", sub_type="방문심방", content="a"),
        make_record(week_start, category="기타", sub_type="기타", content="b\nc"),
    ]
    assert entry_lines(records) == ["￭ a", "• b", "  c"]
