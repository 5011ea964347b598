"""
report_exporter_hwpx.py

교역자 주간 사역일지 HWPX 내보내기 (한글 실행 없이, 템플릿 패치 방식)

⚠️ 중요
- HWPX 스펙(OWPML)은 복잡해서 문서를 처음부터 만들면 한글에서 양식이 어긋나기 쉽다.
- 그래서 교회 정식 양식을 한컴오피스로 만든 템플릿 .hwpx 를 열어서,
  표 셀을 (rowAddr, colAddr) 주소로 찾아 글자만 바꿔 넣는다.
  (글꼴, 테두리, 병합 등 나머지는 템플릿 그대로)

템플릿 준비:
- 같은 폴더에 templates/weekly_ministry_template.hwpx
- 다른 위치라면 HwpxWeeklyReportExporter(template_path=...) 로 지정

셀 주소 표(SLOT_ROWS, DAY_COLUMNS, ...)는 템플릿 XML 의 hp:cellAddr 값을 보고 정한 고정값이다.
Time-Grid 에서 계산하지 않는다. 템플릿을 바꾸면 validate() 로 주소가 아직 맞는지 먼저 확인할 것.

처리 순서:
- 템플릿 zip(hwpx) 열기
- Contents/section0.xml 파싱, hp:cellAddr 로 셀(hp:tc) 찾기
- 셀 문단을 모두 지우고, 스타일 원본 문단을 줄마다 복제해서 채우기
- section0.xml 만 바꿔서 나머지 파트는 그대로 다시 zip
"""

from __future__ import annotations

import copy
import io
import logging
import os
import re
import zipfile
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union
from xml.etree import ElementTree as ET

from aggregator import VISIT_KINDS, WeekAggregate, aggregate_week, dawn_attendance
from models import ActivityRecord, UserProfile, WeeklyNote, WeeklyPlan, CATEGORY_VISIT
from report_output import HWPX_MEDIA_TYPE, ExportedFile, deliver, safe_filename_part
from time_grid import DAYS_IN_WEEK, DAYS_OF_WEEK_KR, is_meal_slot, week_days, week_of_month

logger = logging.getLogger(__name__)

HP_NS = "http://www.hancom.co.kr/hwpml/2011/paragraph"
HP = "{%s}" % HP_NS

SECTION_PART = "Contents/section0.xml"

# 고정 줄간격이면 여러 줄이 겹쳐 보인다 -> 퍼센트 줄간격으로 강제
LINE_SPACING = "160"
LINE_SPACING_TYPE = "Percent"

Address = Tuple[int, int]


# -------------------------
# errors
# -------------------------

class TemplateAssetError(Exception):
    """템플릿 파일 자체의 문제 (배포/설치 문제이지 사용자 데이터 문제가 아님)"""


class TemplateNotFoundError(TemplateAssetError, FileNotFoundError):
    pass


class TemplatePartMissingError(TemplateAssetError):
    pass


class TemplateLayoutError(TemplateAssetError):
    def __init__(self, missing: Sequence[Address]):
        self.missing = list(missing)
        preview = ", ".join(f"({r},{c})" for r, c in self.missing[:10])
        super().__init__(f"템플릿에 없는 셀 주소 {len(self.missing)}개: {preview}")


# -------------------------
# HWPX template engine
# -------------------------

def _register_namespaces(xml_bytes: bytes) -> None:
    # 다시 쓸 때 hp:, hs: 같은 원래 접두어를 유지하려고 등록한다 (안 하면 ns0: 으로 바뀜)
    for _event, (prefix, uri) in ET.iterparse(io.BytesIO(xml_bytes), events=("start-ns",)):
        if not prefix or re.match(r"ns\d+$", prefix):
            continue
        ET.register_namespace(prefix, uri)


def _paragraph_container(tc: ET.Element) -> Optional[ET.Element]:
    """셀 안에서 hp:p 를 직접 자식으로 갖는 첫 요소 (보통 hp:subList)"""
    for el in tc.iter():
        if el.find(HP + "p") is not None:
            return el
    return None


def _paragraph_text(p: ET.Element) -> str:
    parts = []
    for t in p.iter(HP + "t"):
        parts.append(t.text or "")
        for child in t:
            parts.append(child.tail or "")
    return "".join(parts)


def _force_percent_spacing(p: ET.Element) -> None:
    ppr = p.find(HP + "pPr")
    if ppr is None:
        ppr = ET.Element(HP + "pPr")
        p.insert(0, ppr)
    ppr.set("lineSpacing", LINE_SPACING)
    ppr.set("lineSpacingType", LINE_SPACING_TYPE)


def _strip_layout_cache(p: ET.Element) -> None:
    # 이전 글자 기준으로 계산된 줄 배치 정보. 남겨두면 한글이 옛 배치를 그대로 쓴다.
    for lsa in p.findall(HP + "linesegarray"):
        p.remove(lsa)


def _set_paragraph_text(p: ET.Element, text: str) -> None:
    ts = list(p.iter(HP + "t"))
    if not ts:
        run = p.find(HP + "run")
        if run is None:
            run = ET.SubElement(p, HP + "run")
        t = ET.SubElement(run, HP + "t")
        t.text = text
        return

    for i, t in enumerate(ts):
        for child in list(t):
            t.remove(child)
        t.text = text if i == 0 else ""


def _as_lines(text_or_lines: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(text_or_lines, str):
        items = [text_or_lines]
    else:
        items = list(text_or_lines)
    lines: List[str] = []
    for item in items:
        lines.extend(str(item).split("\n"))
    return lines


class HwpxTemplateEngine:
    """HWPX(=zip) 템플릿을 열어 section0.xml 의 표 셀을 주소로 찾아 바꾼다."""

    def __init__(self, template_path: str):
        self.template_path = template_path
        self.root: Optional[ET.Element] = None
        self._members: List[Tuple[zipfile.ZipInfo, bytes]] = []
        self._section_name = ""
        self._cells: Dict[Address, ET.Element] = {}

    # -------- load / save --------

    def load(self) -> "HwpxTemplateEngine":
        if not os.path.exists(self.template_path):
            raise TemplateNotFoundError(
                f"HWPX 템플릿을 찾을 수 없습니다: {self.template_path}\n"
                "templates 폴더에 템플릿 hwpx를 준비하세요."
            )

        try:
            with zipfile.ZipFile(self.template_path, "r") as zin:
                self._members = [(item, zin.read(item.filename)) for item in zin.infolist()]
        except zipfile.BadZipFile as e:
            raise TemplateAssetError(f"HWPX 템플릿이 zip 형식이 아닙니다: {self.template_path}") from e

        section = None
        for item, data in self._members:
            if item.filename.lower() == SECTION_PART.lower():
                section = data
                self._section_name = item.filename
                break
        if section is None:
            raise TemplatePartMissingError(
                f"{SECTION_PART} 파일을 찾을 수 없습니다: {self.template_path}"
            )

        _register_namespaces(section)
        self.root = ET.fromstring(section)
        self._index_cells()
        logger.debug("loaded template %s (%d addressed cells)", self.template_path, len(self._cells))
        return self

    def _index_cells(self) -> None:
        self._cells = {}
        for tc in self.root.iter(HP + "tc"):
            addr = tc.find(HP + "cellAddr")
            if addr is None:
                continue
            try:
                key = (int(addr.get("rowAddr")), int(addr.get("colAddr")))
            except (TypeError, ValueError):
                continue
            # 같은 주소가 여러 번 나오면 (표가 여러 개) 처음 것
            self._cells.setdefault(key, tc)

    def render(self) -> bytes:
        """수정한 section0.xml 로 zip 을 다시 만든다. 나머지 파트는 바이트 그대로."""
        if self.root is None:
            raise RuntimeError("load() 를 먼저 호출하세요.")
        section = ET.tostring(self.root, encoding="utf-8", xml_declaration=True)

        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zout:
            for item, data in self._members:
                if item.filename == self._section_name:
                    data = section
                zout.writestr(item, data)
        return buf.getvalue()

    # -------- lookup --------

    def addresses(self) -> List[Address]:
        return sorted(self._cells)

    def cell(self, row: int, col: int) -> Optional[ET.Element]:
        return self._cells.get((row, col))

    def cell_paragraph(self, row: int, col: int) -> Optional[ET.Element]:
        tc = self.cell(row, col)
        if tc is None:
            return None
        return tc.find(".//" + HP + "p")

    def cell_text(self, row: int, col: int) -> Optional[str]:
        tc = self.cell(row, col)
        if tc is None:
            return None
        container = _paragraph_container(tc)
        if container is None:
            return ""
        return "\n".join(_paragraph_text(p) for p in container.findall(HP + "p"))

    def find_paragraph_by_text(self, search_text: str) -> Optional[ET.Element]:
        parents = {child: parent for parent in self.root.iter() for child in parent}
        for t in self.root.iter(HP + "t"):
            if not t.text or search_text not in t.text:
                continue
            el = parents.get(t)
            while el is not None and el.tag != HP + "p":
                el = parents.get(el)
            if el is not None:
                return el
        return None

    # -------- edit --------

    def set_cell_text(
        self,
        row: int,
        col: int,
        text_or_lines: Union[str, Iterable[str]],
        style: Optional[ET.Element] = None,
    ) -> bool:
        """셀 내용을 줄 단위 문단으로 교체. style 문단이 있으면 그걸 복제해 쓴다."""
        tc = self.cell(row, col)
        if tc is None:
            logger.warning("cell (%d,%d) not found in template", row, col)
            return False

        container = _paragraph_container(tc)
        if container is None:
            logger.warning("cell (%d,%d) has no paragraph to write into", row, col)
            return False

        template_p = copy.deepcopy(style if style is not None else container.find(HP + "p"))
        _force_percent_spacing(template_p)
        _strip_layout_cache(template_p)

        for old in container.findall(HP + "p"):
            container.remove(old)

        # 빈 내용이어도 문단 하나는 남겨야 셀이 깨지지 않는다
        lines = _as_lines(text_or_lines) or [""]
        for line in lines:
            p = copy.deepcopy(template_p)
            _set_paragraph_text(p, line)
            container.append(p)
        return True


# -------------------------
# weekly report layout
# -------------------------

# 상단 정보 (row 0). Col 7은 "부서" 라벨, Col 9는 "사역자" 라벨 (C10-C11은 cellAddr 없음)
WEEK_LABEL_CELL: Address = (0, 0)
DATE_RANGE_CELL: Address = (0, 2)
DEPARTMENT_CELL: Address = (0, 8)
NAME_CELL: Address = (0, 12)

DATE_LABEL_ROW = 2
# 주일(offset 0) ~ 토(offset 6)
DAY_COLUMNS: Tuple[int, ...] = (1, 2, 3, 4, 5, 6, 7)

# 템플릿 시간 라벨은 Column 0 의 Row 3~14 (09:00 ~ 20:00)
SLOT_ROWS: Dict[str, int] = {
    "09:00": 3, "10:00": 4, "11:00": 5, "11:40": 6,
    "12:40": 7, "14:00": 8, "15:00": 9, "16:00": 10,
    "17:00": 11, "18:00": 12, "19:00": 13, "20:00": 14,
}

# 심방 기록 (Row 16=방문, 17=카페, 18=전화), 합계는 Col 10
STAT_ROWS: Dict[str, int] = {"방문": 16, "카페": 17, "전화": 18}
TOTAL_COLUMN = 10

# 다음 주간 계획: 라벨은 Col 10 쪽, 입력 칸은 Col 11. 주일~토 + 비고
PLAN_COLUMN = 11
PLAN_ROWS: Tuple[int, ...] = (3, 4, 5, 6, 7, 8, 9, 10)

SPECIAL_NOTE_CELL: Address = (19, 1)
DAWN_PRAYER_CELL: Address = (20, 9)

# 스타일 원본: 1순위 범례의 '심방' 문단, 2순위 주일 09:00 셀
STYLE_SEARCH_TEXT = "심방"
STYLE_FALLBACK_CELL: Address = (3, 1)

# 한글 글꼴에서 ■/● 대신 쓰는 표시
HWPX_VISIT_MARKER = "￭ "
HWPX_OTHER_MARKER = "• "
CONTINUATION_INDENT = "  "


def required_addresses() -> List[Address]:
    """내보내기가 쓰는 모든 셀 주소 (식사 행 제외)"""
    cells = [WEEK_LABEL_CELL, DATE_RANGE_CELL, DEPARTMENT_CELL, NAME_CELL]
    cells += [(DATE_LABEL_ROW, col) for col in DAY_COLUMNS]
    for slot, row in SLOT_ROWS.items():
        if is_meal_slot(slot):
            continue
        cells += [(row, col) for col in DAY_COLUMNS]
    for row in STAT_ROWS.values():
        cells += [(row, col) for col in DAY_COLUMNS]
        cells.append((row, TOTAL_COLUMN))
    cells += [(row, PLAN_COLUMN) for row in PLAN_ROWS]
    cells += [SPECIAL_NOTE_CELL, DAWN_PRAYER_CELL]
    return cells


def validate_template_layout(engine: HwpxTemplateEngine) -> List[Address]:
    """템플릿에 없는 주소 목록 (비어 있으면 정상)"""
    present = set(engine.addresses())
    return [addr for addr in required_addresses() if addr not in present]


def entry_lines(records: Iterable[ActivityRecord]) -> List[str]:
    """기록마다 첫 줄에 표시, 여러 줄 내용의 나머지 줄은 들여쓰기"""
    lines: List[str] = []
    for record in records:
        marker = HWPX_VISIT_MARKER if record.category == CATEGORY_VISIT else HWPX_OTHER_MARKER
        for i, line in enumerate(record.content.split("\n")):
            lines.append(f"{marker}{line}" if i == 0 else f"{CONTINUATION_INDENT}{line}")
    return lines


def hwpx_filename(week_start: date, profile: UserProfile) -> str:
    name = safe_filename_part(profile.name, "사역자")
    return f"{week_start.month}월_{week_of_month(week_start)}주_주간사역일지_{name}.hwpx"


class HwpxWeeklyReportExporter:
    """템플릿 hwpx 에 한 주 분량을 채워 넣는다."""

    def __init__(self, template_path: Optional[str] = None):
        # 템플릿 기본 위치: report_exporter_hwpx.py 기준 상대경로
        here = os.path.dirname(os.path.abspath(__file__))
        self.template_path = template_path or os.path.join(here, "templates", "weekly_ministry_template.hwpx")

    def validate(self) -> None:
        engine = HwpxTemplateEngine(self.template_path).load()
        missing = validate_template_layout(engine)
        if missing:
            raise TemplateLayoutError(missing)

    def render(
        self,
        week_start: date,
        entries: Iterable[ActivityRecord],
        plan: Optional[WeeklyPlan],
        note: Optional[WeeklyNote],
        profile: UserProfile,
    ) -> bytes:
        engine = HwpxTemplateEngine(self.template_path).load()
        agg = aggregate_week(week_start, entries)

        # 타임라인 셀 스타일을 하나로 맞추기 위한 원본 문단 (채우기 전에 떠 둔다)
        style = engine.find_paragraph_by_text(STYLE_SEARCH_TEXT)
        if style is None:
            style = engine.cell_paragraph(*STYLE_FALLBACK_CELL)
        if style is not None:
            style = copy.deepcopy(style)

        self._fill_header(engine, week_start, profile)
        self._fill_timeline(engine, agg, style)
        self._fill_stats(engine, agg)
        self._fill_plan(engine, plan)
        self._fill_footer(engine, note)

        logger.info(
            "hwpx %s: %d record(s) placed, %d skipped",
            week_start.isoformat(), agg.placed_count(), len(agg.skipped),
        )
        return engine.render()

    # -------- sections --------

    def _fill_header(self, engine: HwpxTemplateEngine, week_start: date, profile: UserProfile) -> None:
        week_end = week_start + timedelta(days=DAYS_IN_WEEK - 1)
        engine.set_cell_text(*WEEK_LABEL_CELL, f"{week_start.month}월 {week_of_month(week_start)}주")
        engine.set_cell_text(
            *DATE_RANGE_CELL,
            f"{week_start.year}. {week_start.month}. {week_start.day}. ~ {week_end.month}. {week_end.day}.",
        )
        engine.set_cell_text(*DEPARTMENT_CELL, profile.department)
        engine.set_cell_text(*NAME_CELL, profile.name)

        for offset, day in enumerate(week_days(week_start)):
            engine.set_cell_text(
                DATE_LABEL_ROW, DAY_COLUMNS[offset],
                f"{day.month}.{day.day}({DAYS_OF_WEEK_KR[offset]})",
            )

    def _fill_timeline(self, engine: HwpxTemplateEngine, agg: WeekAggregate, style: Optional[ET.Element]) -> None:
        for slot, row in SLOT_ROWS.items():
            if is_meal_slot(slot):
                continue
            for offset in range(DAYS_IN_WEEK):
                # 빈 칸도 스타일 통일을 위해 원본 문단으로 다시 쓴다
                engine.set_cell_text(row, DAY_COLUMNS[offset], entry_lines(agg.cell(slot, offset)), style)

    def _fill_stats(self, engine: HwpxTemplateEngine, agg: WeekAggregate) -> None:
        for kind in VISIT_KINDS:
            row = STAT_ROWS[kind]
            for offset in range(DAYS_IN_WEEK):
                count = agg.day_counts(offset)[kind]
                engine.set_cell_text(row, DAY_COLUMNS[offset], f"{kind}심방 : {count} 회")
            engine.set_cell_text(row, TOTAL_COLUMN, f"{kind}심방 : 총 {agg.visit_totals[kind]} 회")

    def _fill_plan(self, engine: HwpxTemplateEngine, plan: Optional[WeeklyPlan]) -> None:
        for index, row in enumerate(PLAN_ROWS):
            engine.set_cell_text(row, PLAN_COLUMN, plan.plan_text(index) if plan else "")

    def _fill_footer(self, engine: HwpxTemplateEngine, note: Optional[WeeklyNote]) -> None:
        engine.set_cell_text(*SPECIAL_NOTE_CELL, note.special_note if note else "")

        attended, count = dawn_attendance(note)
        dawn_text = f"{'. '.join(attended)}\n({count}회 참석)" if count else ""
        engine.set_cell_text(*DAWN_PRAYER_CELL, dawn_text)


# -------------------------
# Public API
# -------------------------

def export_weekly_hwpx(
    week_start: date,
    entries: Iterable[ActivityRecord],
    plan: Optional[WeeklyPlan] = None,
    note: Optional[WeeklyNote] = None,
    profile: Optional[UserProfile] = None,
    out_dir: Union[str, Path, None] = None,
    template_path: Optional[str] = None,
    return_file: bool = False,
) -> Union[ExportedFile, Path]:
    """교역자 주간 사역일지 hwpx 생성.

    템플릿이 없거나 section0.xml 이 없으면 TemplateAssetError 계열 예외가 나고 파일은 만들어지지 않는다.
    """
    profile = profile or UserProfile.fallback()
    exporter = HwpxWeeklyReportExporter(template_path)
    content = exporter.render(week_start, list(entries), plan, note, profile)
    exported = ExportedFile(
        filename=hwpx_filename(week_start, profile),
        content=content,
        media_type=HWPX_MEDIA_TYPE,
    )
    return deliver(exported, out_dir=out_dir, return_file=return_file)
