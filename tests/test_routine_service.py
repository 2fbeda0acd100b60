import os
import sys
import datetime
import unittest
from unittest import mock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    WorkoutOptionRepository,
    ExerciseRepository,
    SetRepository,
    RoutineRepository,
    RoutineItemRepository,
)
from routine_service import RoutineService
from workout_service import WorkoutService


class RoutineServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_routines.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.options = WorkoutOptionRepository(self.db_path)
        self.exercises = ExerciseRepository(self.db_path)
        self.workouts = WorkoutService(
            self.options,
            self.exercises,
            SetRepository(self.db_path),
            clock=lambda: datetime.datetime(2026, 3, 15, 7, 0),
        )
        self.service = RoutineService(
            RoutineRepository(self.db_path),
            RoutineItemRepository(self.db_path),
            self.options,
            self.workouts,
        )
        self.bench = self.workouts.create_option("Bench")
        self.squat = self.workouts.create_option("Squat", "Legs")
        self.row = self.workouts.create_option("Row", "Back")

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_create_requires_options(self) -> None:
        with self.assertRaises(ValueError):
            self.service.create_routine("Empty", [])
        with self.assertRaises(ValueError):
            self.service.create_routine("Broken", [self.bench, 999])
        with self.assertRaises(ValueError):
            self.service.create_routine(" ", [self.bench])
        self.assertEqual(self.service.fetch_all(), [])

    def test_expand_logs_items_in_order(self) -> None:
        rid = self.service.create_routine("Push Pull", [self.squat, self.bench, self.row])
        created = self.service.expand(rid)
        self.assertEqual(len(created), 3)
        names = [self.exercises.fetch_detail(eid)["name"] for eid in created]
        self.assertEqual(names, ["Squat", "Bench", "Row"])
        for eid in created:
            self.assertEqual(self.exercises.fetch_detail(eid)["date"], "2026-03-15T07:00:00")
        self.assertEqual(self.service.fetch_detail(rid)["click_frequency"], 1)

    def test_most_used_first(self) -> None:
        first = self.service.create_routine("A", [self.bench])
        second = self.service.create_routine("B", [self.squat])
        self.service.expand(second)
        self.assertEqual([r["id"] for r in self.service.fetch_all()], [second, first])

    def test_expand_skips_deleted_option(self) -> None:
        rid = self.service.create_routine("Day", [self.bench, self.squat])
        self.workouts.delete_option(self.bench)
        items = self.service.fetch_detail(rid)["items"]
        self.assertIsNone(items[0]["option_id"])
        created = self.service.expand(rid)
        self.assertEqual(len(created), 1)
        self.assertEqual(self.exercises.fetch_detail(created[0])["name"], "Squat")

    def test_expand_keeps_earlier_items_on_failure(self) -> None:
        rid = self.service.create_routine("Day", [self.bench, self.squat, self.row])
        original = self.workouts.create_exercise

        def flaky(option_id, date=None):
            if option_id == self.squat:
                raise ValueError("boom")
            return original(option_id, date)

        with mock.patch.object(self.workouts, "create_exercise", side_effect=flaky):
            created = self.service.expand(rid)
        names = [self.exercises.fetch_detail(eid)["name"] for eid in created]
        self.assertEqual(names, ["Bench", "Row"])
        self.assertEqual(self.service.fetch_detail(rid)["click_frequency"], 1)

    def test_item_order_stays_contiguous(self) -> None:
        rid = self.service.create_routine("Day", [self.bench, self.squat])
        item = self.service.add_item(rid, self.row)
        items = self.service.fetch_detail(rid)["items"]
        self.assertEqual([i["order_index"] for i in items], [0, 1, 2])
        self.service.reorder_items(rid, [item, items[0]["id"], items[1]["id"]])
        items = self.service.fetch_detail(rid)["items"]
        self.assertEqual([i["name"] for i in items], ["Row", "Bench", "Squat"])
        self.service.remove_item(items[1]["id"])
        items = self.service.fetch_detail(rid)["items"]
        self.assertEqual([i["order_index"] for i in items], [0, 1])
        with self.assertRaises(ValueError):
            self.service.reorder_items(rid, [item])

    def test_rename_and_delete(self) -> None:
        rid = self.service.create_routine("Day", [self.bench], "#FF0000")
        self.service.rename_routine(rid, "Upper")
        detail = self.service.fetch_detail(rid)
        self.assertEqual((detail["name"], detail["color_hex"]), ("Upper", "#FF0000"))
        self.service.delete_routine(rid)
        with self.assertRaises(ValueError):
            self.service.fetch_detail(rid)
        with self.assertRaises(ValueError):
            self.service.expand(rid)


if __name__ == "__main__":
    unittest.main()
