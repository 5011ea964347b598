"""
time_grid.py

모든 내보내기(엑셀 / 한글 클립보드 / HWPX)가 공유하는 시간표 축과 주간 날짜 계산.

- TIME_SLOTS 순서가 곧 모든 표의 행 순서다.
- 점심(11:40), 저녁(17:00) 두 칸은 요일별 칸 대신 가로로 병합된 식사 라벨 한 칸으로 그린다.
- 한 주는 항상 주일(일요일)에 시작한다. day 0 = 주일, day 6 = 토요일 (로케일 무관).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

TIME_SLOTS = (
    "05:00", "06:00", "07:00", "08:00", "09:00", "10:00", "11:00",
    "11:40",  # 점심
    "12:40", "14:00", "15:00", "16:00",
    "17:00",  # 저녁 (17:00-18:00)
    "18:00",
    "19:00", "20:00", "21:00", "22:00", "23:00",
)

MEAL_SLOTS: Dict[str, str] = {
    "11:40": "점 심 식 사",
    "17:00": "저 녁 식 사",
}

DAYS_IN_WEEK = 7
DAYS_OF_WEEK_KR = ("주일", "월", "화", "수", "목", "금", "토")
PLAN_LABELS = DAYS_OF_WEEK_KR + ("비고",)

# date.weekday(): 월=0 ... 일=6
_WEEKDAY_SHORT_KR = ("월", "화", "수", "목", "금", "토", "일")


def is_meal_slot(slot: str) -> bool:
    return slot in MEAL_SLOTS


def meal_label(slot: str) -> Optional[str]:
    return MEAL_SLOTS.get(slot)


def slot_index(slot: str) -> Optional[int]:
    try:
        return TIME_SLOTS.index(slot)
    except ValueError:
        return None


def weekday_kr(day: date) -> str:
    """'일', '월', ... 같은 한 글자 요일."""
    return _WEEKDAY_SHORT_KR[day.weekday()]


def sunday_index(day: date) -> int:
    """주일=0 ... 토=6"""
    return (day.weekday() + 1) % 7


def week_start_of(day: date) -> date:
    """주어진 날짜가 속한 주의 주일(같은 날 포함, 이전 방향)."""
    return day - timedelta(days=sunday_index(day))


def week_days(week_start: date) -> List[date]:
    return [week_start + timedelta(days=i) for i in range(DAYS_IN_WEEK)]


def as_date(day: date) -> date:
    # datetime - date 는 TypeError
    return day.date() if isinstance(day, datetime) else day


def day_offset(week_start: date, day: date) -> int:
    return (as_date(day) - as_date(week_start)).days


def week_of_month(day: date) -> int:
    """해당 월 안에서 몇째 주인지 (주일 시작 기준, 1일이 속한 주가 1주)."""
    first_weekday = sunday_index(day.replace(day=1))
    return (day.day + first_weekday - 1) // 7 + 1
