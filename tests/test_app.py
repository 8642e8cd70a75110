from __future__ import annotations

import sys
import unittest
from datetime import date
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import app as app_module

TODAY = date(2025, 3, 15)


class TestCalendarApi(unittest.TestCase):
    def setUp(self) -> None:
        app_module.app.config.update(TESTING=True, SPECIAL_WEEKDAY=5, DISPLAY_LIMIT=2)
        self.client = app_module.app.test_client()
        patcher = patch.object(app_module, "today_local", return_value=TODAY)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_health(self) -> None:
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {"status": "ok"})

    def test_calendar_defaults_to_current_month(self) -> None:
        resp = self.client.post("/calendar", json={"records": []})
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertEqual((data["year"], data["month"]), (2025, 3))
        self.assertEqual(data["title"], "March 2025")
        self.assertEqual(data["prev"], {"year": 2025, "month": 2})
        self.assertEqual(data["next"], {"year": 2025, "month": 4})

    def test_calendar_cells(self) -> None:
        records = [
            {"id": i, "date": "2025-03-14", "training_type": f"Drill {i}"} for i in range(1, 5)
        ] + [{"id": 99, "date": "2025-04-01", "training_type": "Other month"}]
        resp = self.client.post("/calendar?year=2025&month=3", json={"records": records})
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()

        self.assertEqual(data["leading_padding"], 6)
        first_week = data["weeks"][0]
        self.assertEqual(first_week[:6], [None] * 6)
        self.assertEqual(first_week[6]["day"], 1)

        days = [c for week in data["weeks"] for c in week if c is not None]
        self.assertEqual(len(days), 31)

        friday = next(c for c in days if c["day"] == 14)
        self.assertTrue(friday["is_special_weekday"])
        self.assertEqual([r["id"] for r in friday["records"]], [1, 2])
        self.assertEqual(friday["more"], 2)

        today = next(c for c in days if c["is_today"])
        self.assertEqual(today["day"], 15)

        ids = [r["id"] for c in days for r in c["records"]]
        self.assertNotIn(99, ids)

    def test_calendar_rejects_bad_month(self) -> None:
        for month in (0, 13):
            resp = self.client.post(f"/calendar?year=2025&month={month}", json={"records": []})
            self.assertEqual(resp.status_code, 400)
            self.assertIn("month", resp.get_json()["error"])

    def test_calendar_rejects_bad_record_date(self) -> None:
        resp = self.client.post("/calendar", json={"records": [{"id": 1, "date": "soon"}]})
        self.assertEqual(resp.status_code, 400)

    def test_week(self) -> None:
        records = [{"id": 1, "date": "2025-03-12", "trainer": "Lee"}]
        resp = self.client.post("/week?date=2025-03-16", json={"records": records})
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertEqual(data["start"], "2025-03-10")
        self.assertEqual(data["end"], "2025-03-16")
        self.assertEqual(len(data["days"]), 7)
        self.assertEqual(data["days"][2]["records"][0]["trainer"], "Lee")

    def test_week_bad_date(self) -> None:
        resp = self.client.post("/week?date=yesterday", json={})
        self.assertEqual(resp.status_code, 400)

    def test_dashboard(self) -> None:
        body = {
            "trainers": [{"id": 1}, {"id": 2}],
            "sessions": [{"id": 1, "date": "2025-03-15"}, {"id": 2, "date": "2025-03-16"}],
            "physical_training": [{"id": 1, "date": "2025-03-15"}],
            "religious_activities": [{"id": 1, "date": "2025-03-07"}, {"id": 2, "date": "2025-03-15"}],
            "events": [{"id": 1, "start_date": "2025-03-20"}, {"id": 2, "start_date": "2025-01-01"}],
            "assignments": [{"room_id": "A-1-01"}, {"room_id": "A-1-01"}],
        }
        resp = self.client.post("/dashboard", json=body)
        self.assertEqual(resp.status_code, 200)
        stats = resp.get_json()["stats"]
        self.assertEqual(stats["active_trainers"], 2)
        self.assertEqual(stats["today_sessions"], 1)
        self.assertEqual(stats["physical_training"], 1)
        self.assertEqual(stats["religious_activities"], 1)
        self.assertEqual(stats["this_month_activities"], 2)
        self.assertEqual(stats["upcoming_events"], 1)
        self.assertEqual(stats["occupancy_rate"], 1)

        today = resp.get_json()["today_activities"]
        self.assertEqual([r["id"] for r in today["sessions"]], [1])
        self.assertEqual([r["id"] for r in today["physical"]], [1])
        self.assertEqual([r["id"] for r in today["religious"]], [2])

    def test_day_lists_every_record(self) -> None:
        records = [{"id": i, "date": "2025-03-14", "activity": "Jummah"} for i in range(1, 6)]
        records.append({"id": 9, "date": "2025-03-15", "activity": "Drill"})
        resp = self.client.post("/day/2025-03-14", json={"records": records})
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertEqual(data["date"], "2025-03-14")
        self.assertFalse(data["is_today"])
        self.assertTrue(data["is_special_weekday"])
        self.assertEqual([r["id"] for r in data["records"]], [1, 2, 3, 4, 5])

    def test_day_today(self) -> None:
        resp = self.client.post("/day/2025-03-15", json={})
        data = resp.get_json()
        self.assertTrue(data["is_today"])
        self.assertFalse(data["is_special_weekday"])
        self.assertEqual(data["records"], [])

    def test_day_bad_date(self) -> None:
        resp = self.client.post("/day/2025-02-30", json={})
        self.assertEqual(resp.status_code, 404)

    def test_dormitory(self) -> None:
        body = {"assignments": [
            {"room_id": "A-1-01", "trainer": {"name": "Ahmad"}},
            {"room_id": "B-2-05", "trainer": {"name": "Lee"}},
        ]}
        resp = self.client.post("/dormitory?building=A", json=body)
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertEqual(data["stats"]["occupied_rooms"], 2)
        self.assertEqual([r["room_id"] for r in data["rooms"]], ["A-1-01"])
        self.assertEqual(data["rooms"][0]["free_beds"], 3)
        self.assertEqual(data["rooms"][0]["fill_percent"], 25)

    def test_body_must_be_object(self) -> None:
        resp = self.client.post("/dormitory", json=[1, 2])
        self.assertEqual(resp.status_code, 400)


class TestMalformedInput(unittest.TestCase):
    """Bad rows come back as 400 even when exceptions are not propagated."""

    def setUp(self) -> None:
        app_module.app.config.update(TESTING=False, SPECIAL_WEEKDAY=5, DISPLAY_LIMIT=2)
        self.client = app_module.app.test_client()
        patcher = patch.object(app_module, "today_local", return_value=TODAY)
        patcher.start()
        self.addCleanup(patcher.stop)

    def assertBadRequest(self, resp) -> None:
        self.assertEqual(resp.status_code, 400)
        self.assertIn("error", resp.get_json())

    def test_non_object_assignment(self) -> None:
        self.assertBadRequest(self.client.post("/dormitory", json={"assignments": [1]}))

    def test_trainer_not_an_object(self) -> None:
        body = {"assignments": [{"room_id": "A-1-01", "trainer": "Lee"}]}
        self.assertBadRequest(self.client.post("/dormitory?q=lee", json=body))

    def test_non_object_event(self) -> None:
        self.assertBadRequest(self.client.post("/dashboard", json={"events": ["x"]}))

    def test_non_object_trainer_row(self) -> None:
        self.assertBadRequest(self.client.post("/dashboard", json={"trainers": [3]}))

    def test_record_without_id(self) -> None:
        body = {"records": [{"date": "2025-03-01"}]}
        self.assertBadRequest(self.client.post("/calendar", json=body))

    def test_week_past_last_date(self) -> None:
        self.assertBadRequest(self.client.post("/week?date=9999-12-31", json={}))


if __name__ == "__main__":
    unittest.main()
