"""
report_exporter_xlsx.py

교역자 주간 사역일지를 고정 양식의 엑셀(.xlsx)로 만든다.

시트 구성 (열: A=구분/시간, B~H=주일~토, I=다음주간계획)
- 1행  : 제목(A1:H1 병합) + 교회명(I1)
- 2행  : 범례  ■ : 심방   ● : 업무
- 3행  : 월/주차 + 날짜 범위, 부서, 사역자
- 4행  : 요일 헤더
- 5~23 : TIME_SLOTS 한 줄씩. 점심/저녁은 B~H 병합 라벨
- I열  : 다음주간계획 (2행씩 병합, 비고는 19~23)
- 24~26: 심방 기록 (방문/카페/전화)
- 27~28: 특이사항 + 새벽예배

결과는 메모리에서 끝까지 직렬화한 뒤에만 파일로 쓴다.
"""

from __future__ import annotations

import io
import logging
import zipfile
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Union

from openpyxl import Workbook
from openpyxl.cell.rich_text import CellRichText, TextBlock
from openpyxl.cell.text import InlineFont
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from aggregator import VISIT_KINDS, aggregate_week, dawn_attendance, entry_marker
from models import ActivityRecord, UserProfile, WeeklyNote, WeeklyPlan
from report_output import XLSX_MEDIA_TYPE, ExportedFile, deliver, safe_filename_part
from time_grid import (
    DAYS_IN_WEEK, PLAN_LABELS, TIME_SLOTS,
    meal_label, week_days, week_of_month, weekday_kr,
)

logger = logging.getLogger(__name__)

SHEET_TITLE = "주간사역일지"
REPORT_TITLE = "교역자 주간 사역일지"
LEGEND_TEXT = " ■ : 심방   ● : 업무"

FONT_NAME = "Malgun Gothic"

TIME_COL = 1
FIRST_DAY_COL = 2
PLAN_COL = FIRST_DAY_COL + DAYS_IN_WEEK  # I
COLUMN_WIDTHS = [8] + [14] * DAYS_IN_WEEK + [14]

TITLE_ROW = 1
LEGEND_ROW = 2
INFO_ROW = 3
HEADER_ROW = 4
FIRST_SLOT_ROW = 5
STATS_START_ROW = FIRST_SLOT_ROW + len(TIME_SLOTS)  # 24
FOOTER_START_ROW = STATS_START_ROW + len(VISIT_KINDS)  # 27

# (PLAN_LABELS 인덱스, 시작 행, 끝 행)
PLAN_ROW_GROUPS = (
    (0, 5, 6),
    (1, 7, 8),
    (2, 9, 10),
    (3, 11, 12),
    (4, 13, 14),
    (5, 15, 16),
    (6, 17, 18),
    (7, 19, 23),
)

ENTRY_SEPARATOR = "\n\n"

# zip 멤버 시각 고정 (같은 입력 -> 같은 바이트)
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)

FILL_HEADER = "FFBDD7EE"
FILL_TIME = "FFF2F2F2"
FILL_LABEL = "FFFFE0E0"
FILL_TOTAL = "FFFFF9C4"
FILL_DAWN = "FFEEEEEE"

_thin = Side(style="thin")
BORDER = Border(left=_thin, right=_thin, top=_thin, bottom=_thin)

ALIGN_CENTER = Alignment(horizontal="center", vertical="center", wrap_text=True)
ALIGN_LEFT_TOP = Alignment(horizontal="left", vertical="top", wrap_text=True)


def _font(size: float = 10, bold: bool = False, color: Optional[str] = None) -> Font:
    return Font(name=FONT_NAME, size=size, bold=bold, color=color)


def _inline_font(bold: bool = False) -> InlineFont:
    return InlineFont(rFont=FONT_NAME, sz=10, b=bold)


def _fill(argb: str) -> PatternFill:
    return PatternFill(fill_type="solid", start_color=argb, end_color=argb)


def _border_range(ws, min_row: int, min_col: int, max_row: int, max_col: int) -> None:
    # 병합 영역은 모든 칸에 테두리를 줘야 바깥선이 다 그려진다
    for row in ws.iter_rows(min_row=min_row, max_row=max_row, min_col=min_col, max_col=max_col):
        for cell in row:
            cell.border = BORDER


def _merge(ws, min_row: int, min_col: int, max_row: int, max_col: int, border: bool = True):
    ws.merge_cells(start_row=min_row, start_column=min_col, end_row=max_row, end_column=max_col)
    if border:
        _border_range(ws, min_row, min_col, max_row, max_col)
    return ws.cell(row=min_row, column=min_col)


def korean_date(day: date, pattern: str) -> str:
    """pattern 안의 {y} {m} {d} {w} 를 채운다. {w}는 한 글자 요일."""
    return pattern.format(y=day.year, m=day.month, d=day.day, w=weekday_kr(day))


def week_title(week_start: date) -> str:
    days = week_days(week_start)
    date_range = (
        korean_date(days[0], "{y}년 {m}월 {d}일({w})")
        + " ~ "
        + korean_date(days[-1], "{d}일({w})")
    )
    return f"{week_start.month}월 {week_of_month(week_start)}주   {date_range}"


def cell_text(records: Iterable[ActivityRecord]) -> str:
    """한 칸의 기록들을 입력 순서대로, 빈 줄로 구분해 잇는다."""
    return ENTRY_SEPARATOR.join(f"{entry_marker(r.category)}{r.content}" for r in records)


def build_workbook(
    week_start: date,
    entries: Iterable[ActivityRecord],
    plan: Optional[WeeklyPlan],
    note: Optional[WeeklyNote],
    profile: UserProfile,
) -> Workbook:
    agg = aggregate_week(week_start, entries)
    days = week_days(week_start)

    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    for i, width in enumerate(COLUMN_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width

    # ---- 1. 제목 ----
    ws.row_dimensions[TITLE_ROW].height = 30
    title = _merge(ws, TITLE_ROW, TIME_COL, TITLE_ROW, PLAN_COL - 1, border=False)
    title.value = REPORT_TITLE
    title.font = _font(20, bold=True)
    title.alignment = ALIGN_CENTER

    church = ws.cell(row=TITLE_ROW, column=PLAN_COL, value=profile.church_name)
    church.font = _font(12, bold=True, color="FF1B4F72")
    church.alignment = Alignment(horizontal="right", vertical="center")

    # ---- 2. 범례 ----
    ws.row_dimensions[LEGEND_ROW].height = 20
    legend = _merge(ws, LEGEND_ROW, TIME_COL, LEGEND_ROW, PLAN_COL, border=False)
    legend.value = LEGEND_TEXT
    legend.font = _font()
    legend.alignment = Alignment(horizontal="left", vertical="center")

    # ---- 3. 주차 / 부서 / 사역자 ----
    ws.row_dimensions[INFO_ROW].height = 25
    info = _merge(ws, INFO_ROW, TIME_COL, INFO_ROW, 6, border=False)
    info.value = week_title(week_start)
    info.font = _font(bold=True)
    info.alignment = Alignment(horizontal="left", vertical="center")

    dept = _merge(ws, INFO_ROW, 7, INFO_ROW, 8)
    dept.value = f"부서: {profile.department}"
    dept.font = _font()
    dept.alignment = ALIGN_CENTER

    staff = ws.cell(row=INFO_ROW, column=PLAN_COL, value=f"사역자: {profile.name}")
    staff.font = _font()
    staff.alignment = ALIGN_CENTER
    staff.border = BORDER

    # ---- 4. 요일 헤더 ----
    ws.row_dimensions[HEADER_ROW].height = 25
    headers = ["구분"] + [korean_date(d, "{m}.{d}({w})") for d in days] + ["다음주간계획"]
    for col, text in enumerate(headers, start=1):
        cell = ws.cell(row=HEADER_ROW, column=col, value=text)
        cell.fill = _fill(FILL_HEADER)
        cell.font = _font(bold=True)
        cell.alignment = ALIGN_CENTER
        cell.border = BORDER

    # ---- 5. 시간표 ----
    for idx, slot in enumerate(TIME_SLOTS):
        row = FIRST_SLOT_ROW + idx
        ws.row_dimensions[row].height = 30

        time_cell = ws.cell(row=row, column=TIME_COL, value=slot)
        time_cell.font = _font(9)
        time_cell.alignment = ALIGN_CENTER
        time_cell.fill = _fill(FILL_TIME)
        time_cell.border = BORDER
        _border_range(ws, row, FIRST_DAY_COL, row, PLAN_COL)

        label = meal_label(slot)
        if label:
            # 식사 칸에는 기록이 있어도 쓰지 않는다
            meal = _merge(ws, row, FIRST_DAY_COL, row, PLAN_COL - 1)
            meal.value = label
            meal.font = _font()
            meal.alignment = ALIGN_CENTER
            meal.fill = _fill(FILL_TIME)
            continue

        for offset in range(DAYS_IN_WEEK):
            records = agg.cell(slot, offset)
            if not records:
                continue
            cell = ws.cell(row=row, column=FIRST_DAY_COL + offset, value=cell_text(records))
            cell.font = _font()
            cell.alignment = ALIGN_LEFT_TOP

    # ---- 6. 다음주간계획 ----
    for label_idx, first_row, last_row in PLAN_ROW_GROUPS:
        cell = _merge(ws, first_row, PLAN_COL, last_row, PLAN_COL)
        content = plan.plan_text(label_idx) if plan else ""
        blocks = [TextBlock(_inline_font(bold=True), f"{PLAN_LABELS[label_idx]}\n")]
        if content:
            blocks.append(TextBlock(_inline_font(), content))
        cell.value = CellRichText(*blocks)
        cell.alignment = ALIGN_LEFT_TOP

    # ---- 7. 심방 기록 ----
    label = _merge(ws, STATS_START_ROW, TIME_COL, STATS_START_ROW + len(VISIT_KINDS) - 1, TIME_COL)
    label.value = "심방\n기록"
    label.font = _font()
    label.alignment = ALIGN_CENTER
    label.fill = _fill(FILL_LABEL)

    for i, kind in enumerate(VISIT_KINDS):
        row = STATS_START_ROW + i
        ws.row_dimensions[row].height = 20
        for offset in range(DAYS_IN_WEEK):
            cell = ws.cell(
                row=row,
                column=FIRST_DAY_COL + offset,
                value=f"{kind}: {agg.day_counts(offset)[kind]}회",
            )
            cell.font = _font(9)
            cell.alignment = ALIGN_CENTER
            cell.border = BORDER

        total = ws.cell(row=row, column=PLAN_COL, value=f"{kind}심방: 총 {agg.visit_totals[kind]}회")
        total.font = _font(bold=True)
        total.alignment = ALIGN_CENTER
        total.border = BORDER
        total.fill = _fill(FILL_TOTAL)

    # ---- 8. 특이사항 / 새벽예배 ----
    last_footer_row = FOOTER_START_ROW + 1

    note_label = _merge(ws, FOOTER_START_ROW, TIME_COL, last_footer_row, TIME_COL)
    note_label.value = "특이\n사항"
    note_label.font = _font()
    note_label.alignment = ALIGN_CENTER
    note_label.fill = _fill(FILL_LABEL)

    note_cell = _merge(ws, FOOTER_START_ROW, FIRST_DAY_COL, last_footer_row, PLAN_COL - 1)
    note_cell.value = note.special_note if note else ""
    note_cell.font = _font()
    note_cell.alignment = ALIGN_LEFT_TOP

    attended, count = dawn_attendance(note)
    dawn = _merge(ws, FOOTER_START_ROW, PLAN_COL, last_footer_row, PLAN_COL)
    dawn.value = CellRichText(
        TextBlock(_inline_font(bold=True), "새벽예배\n"),
        TextBlock(_inline_font(), f"{','.join(attended)}\n"),
        TextBlock(_inline_font(), f"({count}회 참석)"),
    )
    dawn.alignment = ALIGN_CENTER
    dawn.fill = _fill(FILL_DAWN)

    if agg.skipped:
        logger.info("xlsx %s: %d record(s) left off the grid", week_start.isoformat(), len(agg.skipped))

    return wb


def _pin_zip_timestamps(data: bytes) -> bytes:
    out = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(data)) as src, \
            zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED) as dst:
        for item in src.infolist():
            info = zipfile.ZipInfo(item.filename, date_time=ZIP_TIMESTAMP)
            info.compress_type = item.compress_type
            info.external_attr = item.external_attr
            dst.writestr(info, src.read(item.filename))
    return out.getvalue()


def render_xlsx(
    week_start: date,
    entries: Iterable[ActivityRecord],
    plan: Optional[WeeklyPlan],
    note: Optional[WeeklyNote],
    profile: UserProfile,
) -> bytes:
    wb = build_workbook(week_start, entries, plan, note, profile)
    buf = io.BytesIO()
    wb.save(buf)
    return _pin_zip_timestamps(buf.getvalue())


def xlsx_filename(week_start: date, profile: UserProfile) -> str:
    name = safe_filename_part(profile.name, "사역자")
    return f"{SHEET_TITLE}_{week_start.isoformat()}_{name}.xlsx"


def export_weekly_xlsx(
    week_start: date,
    entries: Iterable[ActivityRecord],
    plan: Optional[WeeklyPlan] = None,
    note: Optional[WeeklyNote] = None,
    profile: Optional[UserProfile] = None,
    out_dir: Union[str, Path, None] = None,
    return_file: bool = False,
) -> Union[ExportedFile, Path]:
    """엑셀 사역일지 생성.

    return_file=True  -> ExportedFile (저장하지 않음)
    return_file=False -> out_dir 에 저장 후 경로
    """
    profile = profile or UserProfile.fallback()
    content = render_xlsx(week_start, list(entries), plan, note, profile)
    exported = ExportedFile(
        filename=xlsx_filename(week_start, profile),
        content=content,
        media_type=XLSX_MEDIA_TYPE,
    )
    return deliver(exported, out_dir=out_dir, return_file=return_file)
