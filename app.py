import os
import logging
from dotenv import load_dotenv

from datetime import datetime, date

from flask import Flask, request, abort, jsonify

from zoneinfo import ZoneInfo

import calendar_grid
import overview
from calendar_grid import InvalidArgument, Record, GridCell

load_dotenv()

app = Flask(__name__)
app.config["APP_TIMEZONE"] = os.getenv("APP_TIMEZONE", "UTC")
app.config["SPECIAL_WEEKDAY"] = int(os.getenv("SPECIAL_WEEKDAY", calendar_grid.FRIDAY)) # 金曜 (Jummah)
app.config["DISPLAY_LIMIT"] = int(os.getenv("DISPLAY_LIMIT", 2)) # セルに出す件数
app.config["DORM_TOTAL_ROOMS"] = int(os.getenv("DORM_TOTAL_ROOMS", overview.DEFAULT_TOTAL_ROOMS))
app.config["DORM_ROOM_CAPACITY"] = int(os.getenv("DORM_ROOM_CAPACITY", overview.DEFAULT_ROOM_CAPACITY))

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def today_local() -> date:
    """
    設定したタイムゾーンでの今日の日付
    時計を読むのはここだけ. 以降は引数で渡す
    """
    tz = ZoneInfo(app.config["APP_TIMEZONE"])
    return datetime.now(tz).date()


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgument("request body must be a JSON object")
    return data


def _rows(data: dict, key: str) -> list:
    rows = data.get(key) or []
    if not isinstance(rows, list):
        raise InvalidArgument(f"{key} must be a list")
    for row in rows:
        overview.require_mapping(row, f"{key} item")
    return rows


def _records(data: dict, key: str = "records") -> list[Record]:
    return [Record.from_dict(row) for row in _rows(data, key)]


def _query_date(name: str) -> date | None:
    value = request.args.get(name)
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        abort(400)


def _cell_json(cell: GridCell, limit: int) -> dict | None:
    # 空白セルは null
    if cell.is_padding:
        return None
    shown = cell.records[:limit]
    return {
        "day": cell.day_number,
        "date": cell.date.isoformat(),
        "is_today": cell.is_today,
        "is_special_weekday": cell.is_special_weekday,
        "records": [r.to_dict() for r in shown],
        "more": len(cell.records) - len(shown),
    }


@app.errorhandler(InvalidArgument)
def invalid_argument(e):
    app.logger.info("rejected request to %s: %s", request.path, e)
    return jsonify({"error": str(e)}), 400


@app.errorhandler(400)
def bad_request(e):
    return jsonify({"error": "bad request"}), 400


@app.errorhandler(404)
def not_found(e):
    return jsonify({"error": "not found"}), 404


@app.route("/health")
def health():
    return jsonify({"status": "ok"})

# 月カレンダー

@app.route("/calendar", methods=["POST"])
def calendar_view():
    year = request.args.get("year", type=int)
    month = request.args.get("month", type=int)

    today = today_local()
    if year is None or month is None:
        year, month = today.year, today.month

    records = _records(_body())
    grid = calendar_grid.build(
        year, month, records,
        today=today,
        special_weekday=app.config["SPECIAL_WEEKDAY"],
    )

    prev_y, prev_m = calendar_grid.prev_month(year, month)
    next_y, next_m = calendar_grid.next_month(year, month)
    limit = app.config["DISPLAY_LIMIT"]

    return jsonify({
        "year": grid.year,
        "month": grid.month,
        "title": f"{calendar_grid.month_name(month)} {year}",
        "weekdays": calendar_grid.DAY_ABBR,
        "leading_padding": grid.leading_padding,
        "weeks": [[_cell_json(c, limit) for c in week] for week in grid.weeks()],
        "prev": {"year": prev_y, "month": prev_m},
        "next": {"year": next_y, "month": next_m},
    })

# 週表示

@app.route("/week", methods=["POST"])
def week_view():
    today = today_local()
    reference = _query_date("date") or today

    cells = calendar_grid.build_week(
        reference, _records(_body()),
        today=today,
        special_weekday=app.config["SPECIAL_WEEKDAY"],
    )
    return jsonify({
        "start": cells[0].date.isoformat(),
        "end": cells[-1].date.isoformat(),
        "days": [_cell_json(c, len(c.records)) for c in cells],
    })

# 日のレコード一覧 (省略なし)

@app.route("/day/<date_str>", methods=["POST"])
def day_view(date_str: str):
    try:
        target_date = date.fromisoformat(date_str)
    except ValueError:
        abort(404)

    today = today_local()
    day_records = overview.records_on(_records(_body()), target_date)
    special_weekday = app.config["SPECIAL_WEEKDAY"]

    return jsonify({
        "date": target_date.isoformat(),
        "is_today": target_date == today,
        "is_special_weekday": calendar_grid.weekday_index(target_date) == special_weekday,
        "records": [r.to_dict() for r in day_records],
    })

# ダッシュボード

@app.route("/dashboard", methods=["POST"])
def dashboard():
    data = _body()
    today = today_local()

    sessions = _records(data, "sessions")
    physical = _records(data, "physical_training")
    religious = _records(data, "religious_activities")
    today_sessions = overview.records_on(sessions, today)
    today_physical = overview.records_on(physical, today)
    today_religious = overview.records_on(religious, today)
    events = overview.upcoming(_rows(data, "events"), today)
    stats = overview.occupancy(
        _rows(data, "assignments"),
        total_rooms=app.config["DORM_TOTAL_ROOMS"],
        room_capacity=app.config["DORM_ROOM_CAPACITY"],
    )

    return jsonify({
        "date": today.isoformat(),
        "stats": {
            "active_trainers": len(_rows(data, "trainers")),
            "today_sessions": len(today_sessions),
            "physical_training": len(today_physical),
            "religious_activities": len(today_religious),
            "this_month_activities": len(overview.records_in_month(religious, today.year, today.month)),
            "upcoming_events": len(events),
            "occupancy_rate": stats.occupancy_rate,
        },
        "upcoming_events": events,
        "today_activities": {
            "sessions": [r.to_dict() for r in today_sessions],
            "physical": [r.to_dict() for r in today_physical],
            "religious": [r.to_dict() for r in today_religious],
        },
    })

# 寮

@app.route("/dormitory", methods=["POST"])
def dormitory():
    assignments = _rows(_body(), "assignments")
    capacity = app.config["DORM_ROOM_CAPACITY"]

    stats = overview.occupancy(
        assignments,
        total_rooms=app.config["DORM_TOTAL_ROOMS"],
        room_capacity=capacity,
    )
    rooms = overview.group_by_room(assignments)
    kept = overview.filter_rooms(
        rooms,
        building=request.args.get("building", "all"),
        floor=request.args.get("floor", "all"),
        search=request.args.get("q", ""),
    )

    room_list = []
    for room_id in kept:
        status = overview.room_status(room_id, rooms[room_id], capacity)
        room_list.append({
            "room_id": room_id,
            "occupants": status.occupants,
            "current": status.current,
            "free_beds": status.free_beds,
            "fill_percent": status.fill_percent,
        })

    return jsonify({
        "stats": {
            "total_rooms": stats.total_rooms,
            "occupied_rooms": stats.occupied_rooms,
            "available_rooms": stats.available_rooms,
            "total_capacity": stats.total_capacity,
            "current_occupancy": stats.current_occupancy,
            "occupancy_rate": stats.occupancy_rate,
        },
        "rooms": room_list,
    })


if __name__ == "__main__":
    app.run(debug=True)
