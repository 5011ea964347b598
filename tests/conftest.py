from __future__ import annotations

import itertools
import zipfile
from datetime import date
from xml.sax.saxutils import escape

import pytest

from models import ActivityRecord, UserProfile, WeeklyNote, WeeklyPlan

WEEK_START = date(2024, 6, 2)  # 주일

HP_NS = "http://www.hancom.co.kr/hwpml/2011/paragraph"
HS_NS = "http://www.hancom.co.kr/hwpml/2011/section"

# 주간사역일지 양식 표의 cellAddr (row -> cols). 실제 한컴 양식 파일이 없어 기존 hwpx 내보내기의 주소표에
# DESIGN.md 결정(월요일 2열, 계획 10행 등)을 더한 가정값이다. 실제 양식과 대조 필요.
TEMPLATE_CELLS = {
    0: [0, 1, 2, 7, 8, 9, 12],
    1: [0, 1, 2, 3, 4, 5, 6, 7, 10],
    2: [0, 1, 2, 3, 4, 5, 6, 7, 10],
    3: [0, 1, 2, 3, 4, 5, 6, 7, 10, 11],
    4: [0, 1, 2, 3, 4, 5, 6, 7, 10, 11],
    5: [0, 1, 2, 3, 4, 5, 6, 7, 10, 11],
    6: [0, 1, 10, 11],  # 점심 (병합)
    7: [0, 1, 2, 3, 4, 5, 6, 7, 10, 11],
    8: [0, 1, 2, 3, 4, 5, 6, 7, 10, 11],
    9: [0, 1, 2, 3, 4, 5, 6, 7, 10, 11],
    10: [0, 1, 2, 3, 4, 5, 6, 7, 10, 11],
    11: [0, 1],  # 저녁 (병합)
    12: [0, 1, 2, 3, 4, 5, 6, 7],
    13: [0, 1, 2, 3, 4, 5, 6, 7],
    14: [0, 1, 2, 3, 4, 5, 6, 7],
    15: [0, 10],
    16: [0, 1, 2, 3, 4, 5, 6, 7, 10],
    17: [0, 1, 2, 3, 4, 5, 6, 7, 10],
    18: [0, 1, 2, 3, 4, 5, 6, 7, 10],
    19: [0, 1],
    20: [0, 1, 8, 9],
}

LEGEND = "■ : 심방   ● : 업무"
LEGEND_CHAR_PR = "42"
CELL_CHAR_PR = "7"


def placeholder(row: int, col: int) -> str:
    return f"__R{row}C{col}__"


def _cell_xml(row: int, col: int) -> str:
    return (
        '<hp:tc name="" header="0" borderFillIDRef="3">'
        '<hp:subList id="" textDirection="HORIZONTAL" lineWrap="BREAK" vertAlign="CENTER">'
        f'<hp:p id="2147483648" paraPrIDRef="20" styleIDRef="0">'
        f'<hp:run charPrIDRef="{CELL_CHAR_PR}"><hp:t>{placeholder(row, col)}</hp:t></hp:run>'
        '<hp:linesegarray><hp:lineseg textpos="0" vertpos="0" vertsize="1000" '
        'textheight="1000" baseline="850" spacing="600" horzpos="0" horzsize="5000" flags="393216"/>'
        '</hp:linesegarray>'
        '</hp:p></hp:subList>'
        f'<hp:cellAddr colAddr="{col}" rowAddr="{row}"/>'
        '<hp:cellSpan colSpan="1" rowSpan="1"/>'
        '<hp:cellSz width="5000" height="1200"/>'
        '</hp:tc>'
    )


def build_section_xml(cells=None, legend: str | None = LEGEND) -> str:
    cells = TEMPLATE_CELLS if cells is None else cells
    rows = "".join(
        "<hp:tr>" + "".join(_cell_xml(r, c) for c in cols) + "</hp:tr>"
        for r, cols in sorted(cells.items())
    )
    legend_p = ""
    if legend is not None:
        legend_p = (
            '<hp:p id="1" paraPrIDRef="31" styleIDRef="0">'
            f'<hp:run charPrIDRef="{LEGEND_CHAR_PR}"><hp:t>{escape(legend)}</hp:t></hp:run>'
            '</hp:p>'
        )
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        f'<hs:sec xmlns:hs="{HS_NS}" xmlns:hp="{HP_NS}">'
        '<hp:p id="0" paraPrIDRef="0" styleIDRef="0"><hp:run charPrIDRef="0"><hp:t>교역자 주간 사역일지</hp:t></hp:run></hp:p>'
        f'{legend_p}'
        '<hp:p id="2" paraPrIDRef="0" styleIDRef="0"><hp:run charPrIDRef="0">'
        f'<hp:tbl rowCnt="{len(cells)}" colCnt="13">{rows}</hp:tbl>'
        '</hp:run></hp:p>'
        '</hs:sec>'
    )


def write_hwpx(path, section_xml: str | None) -> str:
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr(zipfile.ZipInfo("mimetype"), "application/hwp+zip", compress_type=zipfile.ZIP_STORED)
        zf.writestr("version.xml", '<?xml version="1.0" encoding="UTF-8"?><hv:HCFVersion xmlns:hv="http://www.hancom.co.kr/hwpml/2011/version"/>')
        zf.writestr("Contents/header.xml", '<?xml version="1.0" encoding="UTF-8"?><hh:head xmlns:hh="http://www.hancom.co.kr/hwpml/2011/head"/>')
        if section_xml is not None:
            zf.writestr("Contents/section0.xml", section_xml, compress_type=zipfile.ZIP_DEFLATED)
    return str(path)


@pytest.fixture
def week_start():
    return WEEK_START


@pytest.fixture
def make_record():
    counter = itertools.count(1)

    def _make(day, time_slot="09:00", category="업무", sub_type="회의", content="", **kw):
        n = next(counter)
        return ActivityRecord(
            id=kw.pop("id", f"e{n}"),
            date=day,
            time_slot=time_slot,
            category=category,
            sub_type=sub_type,
            content=content or f"기록 {n}",
            **kw,
        )

    return _make


@pytest.fixture
def profile():
    return UserProfile(name="김사역", department="청년부")


@pytest.fixture
def plan(week_start):
    return WeeklyPlan(
        week_start_date=week_start,
        plans={0: "주일 예배", 1: "휴무", 3: "수요 예배 준비", 7: "수련회 답사"},
    )


@pytest.fixture
def note(week_start):
    return WeeklyNote(
        week_start_date=week_start,
        special_note="청년부 수련회 장소 확정",
        dawn_prayer_days=["Tue", "Mon", "Thu"],
    )


@pytest.fixture
def hwpx_template(tmp_path):
    return write_hwpx(tmp_path / "template.hwpx", build_section_xml())
