"""
report_exporter_clipboard.py

시간표 영역만 HTML 표로 만들어 클립보드(text/html)에 올린다. 한글(HWP)에 그대로 붙여넣는 용도.

⚠️ 한글 붙여넣기 호환
- 한글의 HTML 붙여넣기는 rowspan/colspan 이 섞인 표를 받으면 칸이 밀리거나 깨진다.
  (예전 버전: 다음주간계획 열을 rowspan 으로 병합 -> 붙여넣기 후 표가 깨짐)
- 그래서 모든 행을 똑같이 9칸(구분 + 7일 + 계획)으로 만들고 병합을 쓰지 않는다.
  * 다음주간계획: 각 요일 묶음의 첫 행에 "[월] 내용" 처럼 라벨을 글자로 넣는다.
  * 점심/저녁: 7칸을 모두 회색으로 두고 가운데 칸에만 라벨.
- 보기 좋게 rowspan 으로 되돌리면 붙여넣기가 다시 깨진다. 바꾸지 말 것.

클립보드 쓰기는 권한/환경에 따라 실패하는 게 보통이므로 예외 대신 True/False 를 돌려준다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

from jinja2 import Environment
from markupsafe import Markup, escape

from aggregator import aggregate_week, entry_marker
from models import ActivityRecord, UserProfile, WeeklyNote, WeeklyPlan
from time_grid import (
    DAYS_IN_WEEK, PLAN_LABELS, TIME_SLOTS,
    meal_label, week_days, weekday_kr,
)

logger = logging.getLogger(__name__)

FONT_STYLE = "font-family: 'Malgun Gothic', '맑은 고딕', sans-serif; font-size: 8pt; line-height: 1.2;"
BORDER_STYLE = "border: 0.5pt solid black;"
HEADER_BG = "background-color: #BDD7EE;"
TIME_BG = "background-color: #F2F2F2;"

COLUMN_COUNT = 1 + DAYS_IN_WEEK + 1
MEAL_LABEL_OFFSET = 3  # 수요일 칸 (가운데)

# 시간표 행 인덱스 -> PLAN_LABELS 인덱스. 엑셀의 2행 병합 묶음 첫 행과 같은 위치
PLAN_ROW_INDEX: Dict[int, int] = {
    0: 0, 2: 1, 4: 2, 6: 3, 8: 4, 10: 5, 12: 6,
    14: 7,
}

ENTRY_BREAK = Markup("<br/><br/>")
LINE_BREAK = Markup("<br/>")

_TABLE_TEMPLATE = """\
<table style="border-collapse: collapse; width: 100%; {{ font_style }}">
<tr style="{{ header_bg }} font-weight: bold; text-align: center;">
{%- for label in headers %}<td style="{{ border }}{% if loop.first %} width: 60px;{% endif %}">{{ label }}</td>{% endfor -%}
</tr>
{%- for row in rows %}
<tr style="height: 35px;">
{%- for cell in row %}<td style="{{ cell.style }}">{{ cell.html }}</td>{% endfor -%}
</tr>
{%- endfor %}
</table>"""

_env = Environment(autoescape=True)
_template = _env.from_string(_TABLE_TEMPLATE)

ClipboardWriter = Callable[[str, str], None]


@dataclass
class HtmlCell:
    html: Markup
    style: str
    text: str = ""


def _text_html(text: str) -> Markup:
    return LINE_BREAK.join(escape(line) for line in text.split("\n"))


def _entries_html(records: Iterable[ActivityRecord]) -> Markup:
    return ENTRY_BREAK.join(_text_html(f"{entry_marker(r.category)}{r.content}") for r in records)


def _plan_cell(row_index: int, plan: Optional[WeeklyPlan]) -> HtmlCell:
    style = f"{BORDER_STYLE} padding: 4px; vertical-align: top;"
    label_idx = PLAN_ROW_INDEX.get(row_index)
    if label_idx is None:
        return HtmlCell(Markup(""), style)

    content = plan.plan_text(label_idx) if plan else ""
    text = f"[{PLAN_LABELS[label_idx]}] {content}".rstrip()
    return HtmlCell(_text_html(text), style, text)


def build_table_rows(
    week_start: date,
    entries: Iterable[ActivityRecord],
    plan: Optional[WeeklyPlan],
) -> List[List[HtmlCell]]:
    """시간표 행들. 모든 행은 COLUMN_COUNT 칸."""
    agg = aggregate_week(week_start, entries)
    rows: List[List[HtmlCell]] = []

    for idx, slot in enumerate(TIME_SLOTS):
        row = [HtmlCell(escape(slot), f"{BORDER_STYLE} {TIME_BG} text-align: center; width: 60px;", slot)]

        label = meal_label(slot)
        if label:
            for offset in range(DAYS_IN_WEEK):
                text = label if offset == MEAL_LABEL_OFFSET else ""
                row.append(HtmlCell(escape(text), f"{BORDER_STYLE} {TIME_BG} text-align: center;", text))
        else:
            for offset in range(DAYS_IN_WEEK):
                records = agg.cell(slot, offset)
                text = "\n\n".join(f"{entry_marker(r.category)}{r.content}" for r in records)
                row.append(HtmlCell(
                    _entries_html(records),
                    f"{BORDER_STYLE} padding: 4px; vertical-align: top; text-align: left;",
                    text,
                ))

        row.append(_plan_cell(idx, plan))
        rows.append(row)

    return rows


def header_labels(week_start: date) -> List[str]:
    days = [f"{d.month}.{d.day}({weekday_kr(d)})" for d in week_days(week_start)]
    return ["구분"] + days + ["다음주간계획"]


def build_clipboard_html(
    week_start: date,
    entries: Iterable[ActivityRecord],
    plan: Optional[WeeklyPlan] = None,
    note: Optional[WeeklyNote] = None,
    profile: Optional[UserProfile] = None,
) -> str:
    # 시간표 영역만 복사한다. note/profile 은 다른 내보내기와 같은 호출 형태를 위해 받는다.
    rows = build_table_rows(week_start, entries, plan)
    return _template.render(
        font_style=Markup(FONT_STYLE),
        header_bg=HEADER_BG,
        border=BORDER_STYLE,
        headers=header_labels(week_start),
        rows=rows,
    )


def build_clipboard_text(week_start: date, entries: Iterable[ActivityRecord], plan: Optional[WeeklyPlan] = None) -> str:
    """HTML 을 못 받는 곳에 붙여넣을 때 쓰는 탭 구분 텍스트"""
    lines = ["\t".join(header_labels(week_start))]
    for row in build_table_rows(week_start, entries, plan):
        lines.append("\t".join(cell.text.replace("\n", " ") for cell in row))
    return "\n".join(lines)


def qt_clipboard_writer(html: str, text: str) -> None:
    """Qt 시스템 클립보드에 text/html (+ text/plain) 로 올린다."""
    from PyQt6.QtCore import QMimeData
    from PyQt6.QtGui import QGuiApplication

    app = QGuiApplication.instance()
    if app is None:
        raise RuntimeError("클립보드를 쓰려면 실행 중인 Qt 애플리케이션이 필요합니다.")

    mime = QMimeData()
    mime.setHtml(html)
    mime.setText(text)
    app.clipboard().setMimeData(mime)


def copy_to_hwp_clipboard(
    week_start: date,
    entries: Iterable[ActivityRecord],
    plan: Optional[WeeklyPlan] = None,
    note: Optional[WeeklyNote] = None,
    profile: Optional[UserProfile] = None,
    writer: Optional[ClipboardWriter] = None,
) -> bool:
    entries = list(entries)
    html = build_clipboard_html(week_start, entries, plan, note, profile)
    text = build_clipboard_text(week_start, entries, plan)

    try:
        (writer or qt_clipboard_writer)(html, text)
    except Exception:
        logger.exception("clipboard copy failed")
        return False

    logger.info("copied week %s to clipboard (%d chars of html)", week_start.isoformat(), len(html))
    return True
