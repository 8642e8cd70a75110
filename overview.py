"""Dashboard counts and dormitory occupancy over already-fetched rows."""

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from calendar_grid import InvalidArgument, record_date, to_date, check_year_month

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_ROOMS = 50
DEFAULT_ROOM_CAPACITY = 4
DEFAULT_UPCOMING_LIMIT = 5


def require_mapping(row: Any, what: str = "row") -> Mapping[str, Any]:
    if not isinstance(row, Mapping):
        raise InvalidArgument(f"{what} must be an object, got {type(row).__name__}")
    return row


def percent(part: int, whole: int) -> int:
    """Percentage rounded half up (12.5 -> 13)."""
    if whole <= 0:
        raise InvalidArgument(f"whole must be positive, got {whole!r}")
    return math.floor(part * 100 / whole + 0.5)


# ---------------------------------------------------------------------------
# ダッシュボード
# ---------------------------------------------------------------------------

def records_on(records: Iterable, day: date) -> list:
    day = to_date(day)
    return [r for r in records if record_date(r) == day]


def records_in_month(records: Iterable, year: int, month: int) -> list:
    check_year_month(year, month)
    out = []
    for r in records:
        d = record_date(r)
        if d.year == year and d.month == month:
            out.append(r)
    return out


def upcoming(events: Iterable[Mapping[str, Any]], today: date,
             limit: int = DEFAULT_UPCOMING_LIMIT) -> list[Mapping[str, Any]]:
    """Events starting today or later, soonest first."""
    today = to_date(today)
    keyed = [(to_date(require_mapping(e, "event").get("start_date")), e) for e in events]
    keyed = [(d, e) for d, e in keyed if d >= today]
    # sort は安定なので同日のイベントは入力順のまま
    keyed.sort(key=lambda pair: pair[0])
    return [e for _, e in keyed[:max(limit, 0)]]


# ---------------------------------------------------------------------------
# 寮
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Occupancy:
    total_rooms: int
    occupied_rooms: int
    available_rooms: int
    total_capacity: int
    current_occupancy: int
    occupancy_rate: int


@dataclass(frozen=True)
class RoomStatus:
    room_id: str
    capacity: int
    occupants: list = field(default_factory=list, hash=False)

    @property
    def current(self) -> int:
        return len(self.occupants)

    @property
    def free_beds(self) -> int:
        return max(self.capacity - self.current, 0)

    @property
    def fill_percent(self) -> int:
        return percent(self.current, self.capacity)


def parse_room_id(room_id: str) -> tuple[str, str, str]:
    """``"A-2-14"`` -> ``("A", "2", "14")``; missing parts come back empty."""
    parts = str(room_id).split("-")
    parts += [""] * (3 - len(parts))
    return parts[0], parts[1], "-".join(parts[2:])


def group_by_room(assignments: Iterable[Mapping[str, Any]]) -> dict[str, list]:
    rooms: dict[str, list] = {}
    for a in assignments:
        rooms.setdefault(str(require_mapping(a, "assignment").get("room_id")), []).append(a)
    return rooms


def _trainer_name(assignment: Mapping[str, Any]) -> str:
    trainer = assignment.get("trainer")
    if trainer is None:
        return ""
    return str(require_mapping(trainer, "trainer").get("name") or "")


def filter_rooms(rooms: Mapping[str, list], building: str = "all", floor: str = "all",
                 search: str = "") -> list[str]:
    needle = (search or "").lower()
    kept = []
    for room_id, occupants in rooms.items():
        b, f, _ = parse_room_id(room_id)
        if building != "all" and b != building:
            continue
        if floor != "all" and f != floor:
            continue
        if needle and not any(needle in _trainer_name(a).lower() for a in occupants):
            continue
        kept.append(room_id)
    return kept


def room_status(room_id: str, assignments: list, capacity: int = DEFAULT_ROOM_CAPACITY) -> RoomStatus:
    if capacity <= 0:
        raise InvalidArgument(f"capacity must be positive, got {capacity!r}")
    if len(assignments) > capacity:
        logger.warning("room %s holds %d people, capacity %d", room_id, len(assignments), capacity)
    return RoomStatus(room_id=room_id, capacity=capacity, occupants=list(assignments))


def occupancy(assignments: Iterable[Mapping[str, Any]],
              total_rooms: int = DEFAULT_TOTAL_ROOMS,
              room_capacity: int = DEFAULT_ROOM_CAPACITY) -> Occupancy:
    if total_rooms <= 0:
        raise InvalidArgument(f"total_rooms must be positive, got {total_rooms!r}")
    if room_capacity <= 0:
        raise InvalidArgument(f"room_capacity must be positive, got {room_capacity!r}")

    assignments = list(assignments)
    occupied = len({str(require_mapping(a, "assignment").get("room_id")) for a in assignments})
    total_capacity = total_rooms * room_capacity
    return Occupancy(
        total_rooms=total_rooms,
        occupied_rooms=occupied,
        available_rooms=total_rooms - occupied,
        total_capacity=total_capacity,
        current_occupancy=len(assignments),
        occupancy_rate=percent(len(assignments), total_capacity),
    )
