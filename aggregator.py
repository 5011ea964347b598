"""
aggregator.py

한 주(주일~토) 분량의 사역 기록을 (시간, 요일) 칸으로 묶고 심방 통계를 낸다.
세 가지 내보내기(엑셀 / 한글 클립보드 / HWPX)가 모두 이 결과 하나만 사용한다.

정책
- 주간 범위 밖의 기록, TIME_SLOTS 에 없는 시간의 기록은 칸 배치에서 조용히 제외한다.
  (예외를 던지지 않는다. 보고서는 일부 데이터가 이상해도 만들어져야 한다.)
- 한 칸에 여러 기록이 있으면 입력 리스트 순서 그대로 둔다. 재정렬하지 않는다.
- 심방 통계는 시간 칸과 무관하게 주간 범위 안의 기록 전부를 센다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from models import (
    ActivityRecord, WeeklyPlan, WeeklyNote, UserProfile,
    CATEGORY_VISIT, CATEGORY_WORK,
)
from time_grid import TIME_SLOTS, DAYS_IN_WEEK, day_offset

logger = logging.getLogger(__name__)

VISIT_SUFFIX = "심방"
VISIT_KINDS = ("방문", "카페", "전화")

SKIP_OUT_OF_WEEK = "out_of_week"
SKIP_UNKNOWN_SLOT = "unknown_slot"

_MARKERS = {
    CATEGORY_VISIT: "■ ",
    CATEGORY_WORK: "● ",
}


def entry_marker(category: str) -> str:
    """심방 = ■, 업무 = ●, 그 외는 표시 없음"""
    return _MARKERS.get(category, "")


def visit_kind(record: ActivityRecord) -> Optional[str]:
    """'방문심방' -> '방문'. 심방 기록이 아니거나 알 수 없는 하위유형이면 None"""
    if record.category != CATEGORY_VISIT:
        return None
    kind = record.sub_type.replace(VISIT_SUFFIX, "")
    return kind if kind in VISIT_KINDS else None


@dataclass
class SkippedRecord:
    record: ActivityRecord
    reason: str


@dataclass
class WeekAggregate:
    week_start: date
    by_slot_and_day: Dict[Tuple[str, int], List[ActivityRecord]]
    visit_counts: List[Dict[str, int]]
    visit_totals: Dict[str, int]
    skipped: List[SkippedRecord] = field(default_factory=list)

    def cell(self, slot: str, offset: int) -> List[ActivityRecord]:
        return self.by_slot_and_day.get((slot, offset), [])

    def day_counts(self, offset: int) -> Dict[str, int]:
        return self.visit_counts[offset]

    def placed_count(self) -> int:
        return sum(len(v) for v in self.by_slot_and_day.values())


def _empty_counts() -> Dict[str, int]:
    return {kind: 0 for kind in VISIT_KINDS}


def aggregate_week(week_start: date, entries: Iterable[ActivityRecord]) -> WeekAggregate:
    by_slot_and_day: Dict[Tuple[str, int], List[ActivityRecord]] = {
        (slot, d): [] for slot in TIME_SLOTS for d in range(DAYS_IN_WEEK)
    }
    visit_counts = [_empty_counts() for _ in range(DAYS_IN_WEEK)]
    visit_totals = _empty_counts()
    skipped: List[SkippedRecord] = []

    for record in entries:
        offset = day_offset(week_start, record.date)
        if not 0 <= offset < DAYS_IN_WEEK:
            skipped.append(SkippedRecord(record, SKIP_OUT_OF_WEEK))
            continue

        kind = visit_kind(record)
        if kind:
            visit_counts[offset][kind] += 1
            visit_totals[kind] += 1

        key = (record.time_slot, offset)
        if key not in by_slot_and_day:
            skipped.append(SkippedRecord(record, SKIP_UNKNOWN_SLOT))
            continue
        by_slot_and_day[key].append(record)

    if skipped:
        logger.debug(
            "week %s: %d record(s) not placed on the grid (%s)",
            week_start.isoformat(),
            len(skipped),
            ", ".join(sorted({s.reason for s in skipped})),
        )

    return WeekAggregate(
        week_start=week_start,
        by_slot_and_day=by_slot_and_day,
        visit_counts=visit_counts,
        visit_totals=visit_totals,
        skipped=skipped,
    )


def week_entries(week_start: date, entries: Iterable[ActivityRecord]) -> List[ActivityRecord]:
    """주간 범위 [week_start, week_start + 7) 안의 기록만 (입력 순서 유지)"""
    return [e for e in entries if 0 <= day_offset(week_start, e.date) < DAYS_IN_WEEK]


@dataclass
class ExportReadiness:
    profile_ready: bool
    has_entries: bool
    has_plan_or_note: bool
    entry_count: int

    @property
    def ready(self) -> bool:
        # 계획/메모는 없어도 내보낼 수 있다
        return self.profile_ready


def export_readiness(
    week_start: date,
    entries: Iterable[ActivityRecord],
    plan: Optional[WeeklyPlan],
    note: Optional[WeeklyNote],
    profile: Optional[UserProfile],
) -> ExportReadiness:
    count = len(week_entries(week_start, entries))
    profile_ready = bool(profile and profile.name and profile.department and profile.department != "미지정")
    return ExportReadiness(
        profile_ready=profile_ready,
        has_entries=count > 0,
        has_plan_or_note=plan is not None or note is not None,
        entry_count=count,
    )


def dawn_attendance(note: Optional[WeeklyNote]) -> Tuple[List[str], int]:
    """새벽예배 참석 요일(월~금 순서의 한글 라벨)과 횟수"""
    if note is None:
        return [], 0
    days = note.attended_dawn_days()
    return days, len(days)
