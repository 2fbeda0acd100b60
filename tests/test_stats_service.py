import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    WorkoutOptionRepository,
    ExerciseRepository,
    SetRepository,
    WorkoutStatRepository,
    parse_timestamp,
)
from stats_service import StatisticsService
from workout_service import WorkoutService


class StatisticsServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_stats.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.now = datetime.datetime(2026, 3, 15, 10, 0, 0)
        self.options = WorkoutOptionRepository(self.db_path)
        self.exercises = ExerciseRepository(self.db_path)
        self.sets = SetRepository(self.db_path)
        self.stat_repo = WorkoutStatRepository(self.db_path)
        self.workouts = WorkoutService(
            self.options, self.exercises, self.sets, clock=lambda: self.now
        )
        self.stats = StatisticsService(
            self.options, self.exercises, self.sets, self.stat_repo
        )
        self.bench = self.workouts.create_option("Bench", "Chest")

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_new_option_has_empty_stat(self) -> None:
        self.assertFalse(self.stats.is_stale(self.bench))
        stat = self.stats.refresh(self.bench)
        self.assertEqual(stat["frequency"], 0)
        self.assertEqual(stat["total_volume"], 0.0)
        self.assertIsNone(stat["max_one_rep"])
        self.assertIsNone(stat["max_weight"])
        self.assertEqual(stat["one_rep_max_history"], [])

    def test_single_exercise(self) -> None:
        eid = self.workouts.create_exercise(self.bench, "2026-03-01")
        self.workouts.add_set(eid, 5, 200)
        self.assertTrue(self.stats.is_stale(self.bench))
        self.assertLess(
            parse_timestamp(self.stat_repo.fetch(self.bench)["last_updated"]),
            parse_timestamp(self.options.fetch_last_updated(self.bench)),
        )
        stat = self.stats.refresh(self.bench)
        self.assertEqual(
            self.stat_repo.fetch(self.bench)["last_updated"],
            self.options.fetch_last_updated(self.bench),
        )
        self.assertEqual(stat["frequency"], 1)
        self.assertEqual(stat["total_exercises"], 1)
        self.assertEqual(stat["total_days"], 1)
        self.assertAlmostEqual(stat["total_volume"], 1000.0)
        self.assertAlmostEqual(stat["max_one_rep"]["value"], 233.3333, places=3)
        self.assertEqual(stat["max_one_rep"]["exercise_id"], eid)
        self.assertEqual(stat["max_one_rep"]["date"], "2026-03-01T00:00:00")
        self.assertEqual(stat["max_weight"]["value"], 200.0)
        self.assertFalse(self.stats.is_stale(self.bench))

    def test_additional_set_and_duplicate(self) -> None:
        eid = self.workouts.create_exercise(self.bench, "2026-03-01")
        self.workouts.add_set(eid, 5, 200)
        self.stats.refresh(self.bench)
        self.workouts.add_set(eid, 10, 180)
        stat = self.stats.refresh(self.bench)
        self.assertAlmostEqual(stat["total_volume"], 2800.0)
        self.assertAlmostEqual(stat["max_one_rep"]["value"], 240.0)
        self.assertEqual(stat["max_weight"]["value"], 200.0)

        copy = self.workouts.duplicate_exercise(eid)
        stat = self.stats.refresh(self.bench)
        self.assertEqual(stat["frequency"], 2)
        self.assertEqual(stat["total_days"], 2)
        self.assertAlmostEqual(stat["total_volume"], 5600.0)
        # ties keep the earlier record
        self.assertEqual(stat["max_one_rep"]["exercise_id"], eid)
        self.assertNotEqual(copy, eid)

    def test_refresh_is_idempotent(self) -> None:
        eid = self.workouts.create_exercise(self.bench, "2026-03-01")
        self.workouts.add_set(eid, 5, 200)
        first = self.stats.refresh(self.bench)
        second = self.stats.refresh(self.bench)
        self.assertEqual(first, second)

    def test_watermark_advances_with_fixed_clock(self) -> None:
        before = self.options.fetch_last_updated(self.bench)
        eid = self.workouts.create_exercise(self.bench, "2026-03-01")
        middle = self.options.fetch_last_updated(self.bench)
        self.workouts.add_set(eid, 5, 200)
        after = self.options.fetch_last_updated(self.bench)
        self.assertLess(before, middle)
        self.assertLess(middle, after)

    def test_retype_moves_stats(self) -> None:
        incline = self.workouts.create_option("Incline Bench", "Chest")
        eid = self.workouts.create_exercise(self.bench, "2026-03-01")
        self.workouts.add_set(eid, 5, 200)
        self.stats.refresh(self.bench)
        self.stats.refresh(incline)

        self.workouts.retype_exercise(eid, incline)
        self.assertTrue(self.stats.is_stale(self.bench))
        self.assertTrue(self.stats.is_stale(incline))
        self.assertEqual(self.stats.refresh(self.bench)["frequency"], 0)
        moved = self.stats.refresh(incline)
        self.assertEqual(moved["frequency"], 1)
        self.assertAlmostEqual(moved["total_volume"], 1000.0)
        self.assertEqual(self.exercises.fetch_detail(eid)["name"], "Incline Bench")

    def test_exercise_without_sets_is_ignored(self) -> None:
        self.workouts.create_exercise(self.bench, "2026-03-01")
        stat = self.stats.refresh(self.bench)
        self.assertEqual(stat["frequency"], 0)
        self.assertIsNone(stat["max_weight"])

    def test_records_only_move_up(self) -> None:
        first = self.workouts.create_exercise(self.bench, "2026-03-01")
        self.workouts.add_set(first, 5, 200)
        second = self.workouts.create_exercise(self.bench, "2026-03-08")
        self.workouts.add_set(second, 5, 150)
        stat = self.stats.refresh(self.bench)
        self.assertEqual(stat["max_weight"]["exercise_id"], first)
        self.assertEqual(
            [h["value"] for h in stat["max_weight_history"]], [200.0, 150.0]
        )

    def test_deleting_exercise_clears_stats(self) -> None:
        eid = self.workouts.create_exercise(self.bench, "2026-03-01")
        self.workouts.add_set(eid, 5, 200)
        self.stats.refresh(self.bench)
        self.workouts.delete_exercise(eid)
        stat = self.stats.refresh(self.bench)
        self.assertEqual(stat["frequency"], 0)
        self.assertEqual(stat["total_volume"], 0.0)

    def test_frequency_records_and_history(self) -> None:
        squat = self.workouts.create_option("Squat", "Legs")
        for day in ("2026-03-01", "2026-03-03"):
            eid = self.workouts.create_exercise(squat, day)
            self.workouts.add_set(eid, 5, 300)
        eid = self.workouts.create_exercise(self.bench, "2026-03-02")
        self.workouts.add_set(eid, 5, 200)

        freq = self.stats.exercise_frequency()
        self.assertEqual([f["name"] for f in freq], ["Squat", "Bench"])
        records = self.stats.personal_records()
        self.assertEqual([r["name"] for r in records], ["Bench", "Squat"])
        history = self.stats.exercise_history(squat)
        self.assertEqual(
            [h["date"][:10] for h in history], ["2026-03-03", "2026-03-01"]
        )
        days = self.stats.training_days("2026-03-02")
        self.assertEqual(days, {"days": ["2026-03-02", "2026-03-03"], "count": 2})

    def test_duplicate_of_orphan_counts_again(self) -> None:
        eid = self.workouts.create_exercise(self.bench, "2026-03-01")
        self.workouts.add_set(eid, 5, 200)
        self.workouts.delete_option(self.bench)
        copy = self.workouts.duplicate_exercise(eid)
        option_id = self.exercises.fetch_detail(copy)["option_id"]
        stat = self.stats.refresh(option_id)
        self.assertEqual(stat["workout_name"], "Bench")
        self.assertEqual(stat["frequency"], 1)
        self.assertEqual(stat["max_weight"]["exercise_id"], copy)

    def test_unknown_option(self) -> None:
        with self.assertRaises(ValueError):
            self.stats.refresh(999)


if __name__ == "__main__":
    unittest.main()
