import os
import sys
import sqlite3
import datetime

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    WorkoutOptionRepository,
    ExerciseRepository,
    SetRepository,
    MonthlyWorkoutRepository,
)
from monthly_service import MonthlyIndexService
from workout_service import WorkoutService


def _services(db_file: str):
    options = WorkoutOptionRepository(db_file)
    exercises = ExerciseRepository(db_file)
    sets = SetRepository(db_file)
    monthly_repo = MonthlyWorkoutRepository(db_file)
    workouts = WorkoutService(
        options,
        exercises,
        sets,
        clock=lambda: datetime.datetime(2026, 3, 15, 18, 30),
    )
    return workouts, MonthlyIndexService(monthly_repo, exercises, sets), monthly_repo


def _orphan_all(db_file: str) -> None:
    conn = sqlite3.connect(db_file)
    conn.execute("UPDATE exercises SET monthly_id = NULL;")
    conn.commit()
    conn.close()


class TestMonthlyIndex:
    def test_exercise_is_filed_on_creation(self, tmp_path):
        db_file = str(tmp_path / "monthly.db")
        workouts, monthly, repo = _services(db_file)
        oid = workouts.create_option("Bench")
        eid = workouts.create_exercise(oid, "2026-02-10T07:00:00")
        bucket = monthly.bucket(2026, 2)
        assert bucket["id_string"] == "2026-2"
        assert bucket["display_name"] == "February 2026"
        assert [e["id"] for e in bucket["exercises"]] == [eid]
        assert repo.count(2026, 2) == 1

    def test_backfill_creates_one_bucket_per_month(self, tmp_path):
        db_file = str(tmp_path / "monthly.db")
        workouts, monthly, repo = _services(db_file)
        oid = workouts.create_option("Bench")
        for day in ("2026-01-03", "2026-01-20", "2026-02-01"):
            workouts.create_exercise(oid, day)
        _orphan_all(db_file)

        assert monthly.backfill() == 3
        assert repo.count(2026, 1) == 1
        assert repo.count(2026, 2) == 1
        assert len(monthly.bucket(2026, 1)["exercises"]) == 2
        assert monthly.backfill() == 0

    def test_assign_reuses_bucket(self, tmp_path):
        db_file = str(tmp_path / "monthly.db")
        workouts, monthly, repo = _services(db_file)
        oid = workouts.create_option("Bench")
        first = workouts.create_exercise(oid, "2026-01-03")
        second = workouts.create_exercise(oid, "2026-01-04")
        _orphan_all(db_file)
        assert monthly.assign(first) == monthly.assign(second)
        assert repo.count(2026, 1) == 1

    def test_empty_bucket_is_kept(self, tmp_path):
        db_file = str(tmp_path / "monthly.db")
        workouts, monthly, _repo = _services(db_file)
        oid = workouts.create_option("Bench")
        eid = workouts.create_exercise(oid, "2026-01-03")
        workouts.delete_exercise(eid)
        summary = monthly.month_summary(2026, 1)
        assert summary["total_exercises"] == 0
        assert summary["total_volume"] == 0.0

    def test_month_summary(self, tmp_path):
        db_file = str(tmp_path / "monthly.db")
        workouts, monthly, _repo = _services(db_file)
        oid = workouts.create_option("Bench")
        a = workouts.create_exercise(oid, "2026-03-01T08:00:00")
        b = workouts.create_exercise(oid, "2026-03-01T18:00:00")
        c = workouts.create_exercise(oid, "2026-03-04")
        workouts.add_set(a, 5, 200)
        workouts.add_set(b, 10, 100)
        workouts.add_set(c, 1, 50)
        summary = monthly.month_summary(2026, 3)
        assert summary["total_exercises"] == 3
        assert summary["total_volume"] == 2050.0
        assert summary["total_days"] == 2
        assert monthly.training_days_in_month(2026, 3) == ["2026-03-01", "2026-03-04"]
        assert monthly.month_summary(2025, 3) is None
        assert [m["id_string"] for m in monthly.months()] == ["2026-3"]

    def test_exercises_on_day_and_today(self, tmp_path):
        db_file = str(tmp_path / "monthly.db")
        workouts, monthly, _repo = _services(db_file)
        oid = workouts.create_option("Bench")
        workouts.create_exercise(oid, "2026-03-14")
        today = workouts.create_exercise(oid)
        on_day = monthly.exercises_on_day(datetime.date(2026, 3, 14))
        assert len(on_day) == 1
        now = datetime.datetime(2026, 3, 15, 21, 0)
        assert [e["id"] for e in monthly.todays_exercises(now)] == [today]
        assert monthly.exercises_on_day(datetime.date(2025, 1, 1)) == []

    def test_grouped_by_date(self, tmp_path):
        db_file = str(tmp_path / "monthly.db")
        workouts, monthly, _repo = _services(db_file)
        bench = workouts.create_option("Bench")
        squat = workouts.create_option("Squat", "Legs")
        workouts.create_exercise(bench, "2026-03-01")
        workouts.create_exercise(squat, "2026-03-01")
        workouts.create_exercise(squat, "2026-03-02")
        groups = monthly.grouped_by_date()
        assert [g["date"] for g in groups] == ["2026-03-02", "2026-03-01"]
        assert len(groups[1]["exercises"]) == 2
        filtered = monthly.grouped_by_date("bench")
        assert [g["date"] for g in filtered] == ["2026-03-01"]

    def test_invalid_month(self, tmp_path):
        db_file = str(tmp_path / "monthly.db")
        _workouts, _monthly, repo = _services(db_file)
        with pytest.raises(ValueError):
            repo.find_or_create(2026, 13)
