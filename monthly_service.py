from __future__ import annotations
import calendar
import datetime
import logging
from typing import Dict, List, Optional

from db import ExerciseRepository, MonthlyWorkoutRepository, SetRepository
from tools import MathTools

logger = logging.getLogger(__name__)


class MonthlyIndexService:
    """Maintain the (year, month) buckets that index logged exercises."""

    def __init__(
        self,
        monthly_repo: MonthlyWorkoutRepository,
        exercise_repo: ExerciseRepository,
        set_repo: SetRepository,
    ) -> None:
        self.monthly = monthly_repo
        self.exercises = exercise_repo
        self.sets = set_repo

    @staticmethod
    def _year_month(date: str) -> tuple[int, int]:
        parsed = datetime.datetime.fromisoformat(date)
        return parsed.year, parsed.month

    def assign(self, exercise_id: int) -> int:
        """File an exercise under the bucket of its month and return the bucket id."""
        with self.monthly.transaction() as conn:
            exercise = self.exercises.fetch_detail(exercise_id, conn=conn)
            year, month = self._year_month(exercise["date"])
            monthly_id = self.monthly.find_or_create(year, month, conn=conn)
            self.exercises.set_monthly(exercise_id, monthly_id, conn=conn)
        return monthly_id

    def backfill(self) -> int:
        """Assign every exercise that has no bucket; return how many were fixed."""
        with self.monthly.transaction() as conn:
            orphans = self.exercises.fetch_unassigned(conn=conn)
            if not orphans:
                return 0
            cache: dict[tuple[int, int], int] = {}
            for exercise_id, date in orphans:
                key = self._year_month(date)
                if key not in cache:
                    cache[key] = self.monthly.find_or_create(*key, conn=conn)
                self.exercises.set_monthly(exercise_id, cache[key], conn=conn)
        logger.info(
            "assigned %d exercises to %d monthly buckets", len(orphans), len(cache)
        )
        return len(orphans)

    @staticmethod
    def display_name(year: int, month: int) -> str:
        return f"{calendar.month_name[month]} {year}"

    def bucket(self, year: int, month: int) -> Optional[Dict[str, object]]:
        row = self.monthly.fetch(year, month)
        if row is None:
            return None
        monthly_id, year, month = row
        exercises = self.exercises.fetch_for_month(monthly_id)
        return {
            "id": monthly_id,
            "year": year,
            "month": month,
            "id_string": f"{year}-{month}",
            "display_name": self.display_name(year, month),
            "exercises": exercises,
        }

    def month_summary(self, year: int, month: int) -> Optional[Dict[str, object]]:
        """Return count, volume and distinct training days of a month."""
        bucket = self.bucket(year, month)
        if bucket is None:
            return None
        sets = self.sets.fetch_for_month(bucket["id"])
        days = {e["date"][:10] for e in bucket["exercises"]}
        return {
            "id": bucket["id"],
            "year": bucket["year"],
            "month": bucket["month"],
            "id_string": bucket["id_string"],
            "display_name": bucket["display_name"],
            "total_exercises": len(bucket["exercises"]),
            "total_volume": MathTools.volume((r, w) for _e, _d, r, w in sets),
            "total_days": len(days),
        }

    def months(self) -> List[Dict[str, object]]:
        """Return summaries of every bucket, newest first."""
        result = []
        for _mid, year, month in self.monthly.fetch_all_buckets():
            summary = self.month_summary(year, month)
            if summary is not None:
                result.append(summary)
        return result

    def training_days_in_month(self, year: int, month: int) -> List[str]:
        bucket = self.bucket(year, month)
        if bucket is None:
            return []
        return sorted({e["date"][:10] for e in bucket["exercises"]})

    def exercises_on_day(self, day: datetime.date) -> List[Dict[str, object]]:
        if isinstance(day, datetime.datetime):
            day = day.date()
        bucket = self.monthly.fetch(day.year, day.month)
        if bucket is None:
            return []
        return [
            e
            for e in self.exercises.fetch_for_month(bucket[0])
            if e["date"][:10] == day.isoformat()
        ]

    def todays_exercises(self, now: datetime.datetime) -> List[Dict[str, object]]:
        """Return the exercises logged on the calendar day of ``now``."""
        return self.exercises_on_day(now.date())

    def grouped_by_date(self, search: str | None = None) -> List[Dict[str, object]]:
        """Return all exercises grouped per day, newest day first."""
        needle = (search or "").strip().casefold()
        groups: dict[str, list[dict]] = {}
        for exercise in self.exercises.fetch_all_exercises():
            if needle and needle not in exercise["name"].casefold():
                continue
            groups.setdefault(exercise["date"][:10], []).append(exercise)
        return [
            {"date": day, "exercises": groups[day]}
            for day in sorted(groups, reverse=True)
        ]
