from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Dict, Any, Optional

CHURCH_NAME = "오륜교회"

# 카테고리
CATEGORY_VISIT = "심방"
CATEGORY_WORK = "업무"
CATEGORY_OTHER = "기타"
CATEGORIES = (CATEGORY_VISIT, CATEGORY_WORK, CATEGORY_OTHER)

SUB_TYPES: Dict[str, tuple] = {
    CATEGORY_VISIT: ("방문심방", "카페심방", "전화심방"),
    CATEGORY_WORK: ("회의", "행정", "기타"),
    CATEGORY_OTHER: ("새벽기도", "기타"),
}

# WeeklyPlan.plans 키: 0=주일 ... 6=토, 7=비고
PLAN_KEYS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Remarks")
REMARKS_INDEX = 7

# 새벽예배는 월~금만
DAWN_DAYS_EN = ("Mon", "Tue", "Wed", "Thu", "Fri")
DAWN_DAYS_KR = ("월", "화", "수", "목", "금")


def parse_date(value: Any) -> date:
    """'YYYY-MM-DD' (또는 ISO datetime 문자열) / datetime / date 를 date로."""
    # datetime 은 date 의 하위 클래스라 먼저 본다
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass
class ActivityRecord:
    id: str
    date: date
    time_slot: str
    category: str
    sub_type: str
    content: str = ""
    is_highlight: bool = False
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        # 저장소(camelCase) 형태로 되돌림
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "time": self.time_slot,
            "category": self.category,
            "subType": self.sub_type,
            "content": self.content,
            "isHighlight": self.is_highlight,
            "createdAt": self.created_at,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ActivityRecord":
        return ActivityRecord(
            id=str(d.get("id", "") or ""),
            date=parse_date(d["date"]),
            time_slot=str(d.get("time", d.get("time_slot", "")) or ""),
            category=str(d.get("category", "") or ""),
            sub_type=str(d.get("subType", d.get("sub_type", "")) or ""),
            content=str(d.get("content", "") or ""),
            is_highlight=bool(d.get("isHighlight", d.get("is_highlight", False))),
            created_at=str(d.get("createdAt", d.get("created_at", "")) or ""),
        )


@dataclass
class WeeklyPlan:
    week_start_date: date
    plans: Dict[int, str] = field(default_factory=dict)

    def plan_text(self, index: int) -> str:
        return self.plans.get(index, "") or ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weekStartDate": self.week_start_date.isoformat(),
            "plans": {str(k): v for k, v in self.plans.items()},
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "WeeklyPlan":
        plans: Dict[int, str] = {}
        for key, text in (d.get("plans", {}) or {}).items():
            index = _plan_index(key)
            if index is not None:
                plans[index] = str(text or "")
        return WeeklyPlan(
            week_start_date=parse_date(d.get("weekStartDate", d.get("week_start_date"))),
            plans=plans,
        )


def _plan_index(key: Any) -> Optional[int]:
    """0..7 정수, "3" 같은 문자열, "Monday" 같은 요일명을 모두 허용."""
    if isinstance(key, int):
        return key if 0 <= key <= REMARKS_INDEX else None
    s = str(key).strip()
    if s.isdigit():
        i = int(s)
        return i if 0 <= i <= REMARKS_INDEX else None
    for i, name in enumerate(PLAN_KEYS):
        if s.lower() == name.lower():
            return i
    return None


@dataclass
class WeeklyNote:
    week_start_date: date
    special_note: str = ""
    dawn_prayer_days: List[str] = field(default_factory=list)

    def attended_dawn_days(self) -> List[str]:
        """참석한 요일을 월~금 순서의 한글 라벨로 (중복/알 수 없는 값 제외)."""
        marked = set()
        for label in self.dawn_prayer_days or []:
            s = str(label).strip()
            if s in DAWN_DAYS_KR:
                marked.add(s)
            elif s[:3].capitalize() in DAWN_DAYS_EN:
                marked.add(DAWN_DAYS_KR[DAWN_DAYS_EN.index(s[:3].capitalize())])
        return [kr for kr in DAWN_DAYS_KR if kr in marked]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weekStartDate": self.week_start_date.isoformat(),
            "specialNote": self.special_note,
            "dawnPrayerDays": list(self.dawn_prayer_days),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "WeeklyNote":
        return WeeklyNote(
            week_start_date=parse_date(d.get("weekStartDate", d.get("week_start_date"))),
            special_note=str(d.get("specialNote", d.get("special_note", "")) or ""),
            dawn_prayer_days=list(d.get("dawnPrayerDays", d.get("dawn_prayer_days", [])) or []),
        )


@dataclass
class UserProfile:
    name: str = ""
    department: str = ""
    church_name: str = CHURCH_NAME

    @staticmethod
    def fallback(display_name: str = "") -> "UserProfile":
        # 프로필이 아직 없을 때 내보내기 화면이 쓰는 기본값
        return UserProfile(name=display_name or "사역자", department="미지정")

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "department": self.department, "churchName": self.church_name}

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "UserProfile":
        return UserProfile(
            name=str(d.get("name", "") or ""),
            department=str(d.get("department", "") or ""),
            church_name=CHURCH_NAME,
        )
