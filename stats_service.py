from __future__ import annotations
import logging
import sqlite3
from typing import List, Optional, Dict

from db import (
    WorkoutOptionRepository,
    ExerciseRepository,
    SetRepository,
    WorkoutStatRepository,
    parse_timestamp,
)
from tools import MathTools

logger = logging.getLogger(__name__)


class StatisticsService:
    """Compute and cache per-option workout statistics.

    Every option owns one stat record. Mutations advance the option's
    ``last_updated`` watermark; :meth:`refresh` recomputes the record in full
    only when that watermark is newer than the one stored with the stat.
    """

    def __init__(
        self,
        option_repo: WorkoutOptionRepository,
        exercise_repo: ExerciseRepository,
        set_repo: SetRepository,
        stat_repo: WorkoutStatRepository,
    ) -> None:
        self.options = option_repo
        self.exercises = exercise_repo
        self.sets = set_repo
        self.stats = stat_repo

    def is_stale(self, option_id: int) -> bool:
        option_stamp = self.options.fetch_last_updated(option_id)
        stat = self.stats.fetch(option_id)
        if stat is None:
            return True
        return parse_timestamp(option_stamp) > parse_timestamp(stat["last_updated"])

    def refresh(self, option_id: int) -> Dict[str, object]:
        """Return the stat for ``option_id``, recomputing it first if stale."""
        with self.stats.transaction() as conn:
            option = self.options.fetch_detail(option_id, conn=conn)
            stat = self.stats.fetch(option_id, conn=conn)
            if stat is not None and parse_timestamp(
                option["last_updated"]
            ) <= parse_timestamp(stat["last_updated"]):
                return stat
            return self._recalculate(option, conn)

    def recalculate(self, option_id: int) -> Dict[str, object]:
        """Recompute the stat for ``option_id`` regardless of staleness."""
        with self.stats.transaction() as conn:
            option = self.options.fetch_detail(option_id, conn=conn)
            return self._recalculate(option, conn)

    def _recalculate(self, option: dict, conn: sqlite3.Connection) -> Dict[str, object]:
        rows = self.sets.fetch_for_option(option["id"], conn=conn)
        grouped: dict[int, dict] = {}
        for exercise_id, date, reps, weight in rows:
            entry = grouped.setdefault(exercise_id, {"date": date, "sets": []})
            entry["sets"].append((int(reps), float(weight)))
        # exercises without sets never show up in the join
        ordered = sorted(grouped.items(), key=lambda item: item[1]["date"])

        one_rep_history: list[dict] = []
        weight_history: list[dict] = []
        best_one_rep: Optional[dict] = None
        best_weight: Optional[dict] = None
        total_volume = 0.0
        days: set[str] = set()
        for exercise_id, entry in ordered:
            date = entry["date"]
            sets = entry["sets"]
            daily_one_rep = MathTools.best_one_rep_max(sets)
            daily_weight = MathTools.max_weight(sets)
            if daily_one_rep > 0:
                one_rep_history.append({"date": date, "value": daily_one_rep})
                if best_one_rep is None or daily_one_rep > best_one_rep["value"]:
                    best_one_rep = {
                        "date": date,
                        "exercise_id": exercise_id,
                        "value": daily_one_rep,
                    }
            if daily_weight > 0:
                weight_history.append({"date": date, "value": daily_weight})
                if best_weight is None or daily_weight > best_weight["value"]:
                    best_weight = {
                        "date": date,
                        "exercise_id": exercise_id,
                        "value": daily_weight,
                    }
            total_volume += MathTools.volume(sets)
            days.add(date[:10])

        stat = {
            "option_id": option["id"],
            "workout_name": option["name"],
            "one_rep_max_history": one_rep_history,
            "max_weight_history": weight_history,
            "frequency": len(ordered),
            "total_volume": total_volume,
            "total_exercises": len(ordered),
            "total_days": len(days),
            "last_updated": option["last_updated"],
            "max_one_rep": best_one_rep,
            "max_weight": best_weight,
        }
        self.stats.save(stat, conn=conn)
        logger.debug(
            "recalculated stats for option %s over %d exercises",
            option["id"],
            len(ordered),
        )
        return stat

    def all_stats(self) -> List[Dict[str, object]]:
        return [self.refresh(oid) for oid, _name, _cat in self.options.fetch_all_options()]

    def exercise_frequency(self) -> List[Dict[str, object]]:
        """Return how often each option was trained, most frequent first."""
        result = [
            {
                "option_id": stat["option_id"],
                "name": stat["workout_name"],
                "frequency": stat["frequency"],
            }
            for stat in self.all_stats()
        ]
        return sorted(result, key=lambda x: (-x["frequency"], x["name"].casefold()))

    def personal_records(self) -> List[Dict[str, object]]:
        """Return the best 1RM and best weight of every trained option."""
        records = []
        for stat in self.all_stats():
            if stat["max_one_rep"] is None and stat["max_weight"] is None:
                continue
            records.append(
                {
                    "option_id": stat["option_id"],
                    "name": stat["workout_name"],
                    "max_one_rep": stat["max_one_rep"],
                    "max_weight": stat["max_weight"],
                }
            )
        return sorted(records, key=lambda x: x["name"].casefold())

    def exercise_history(self, option_id: int) -> List[Dict[str, object]]:
        """Return the non-empty exercises of an option, newest first."""
        self.options.fetch_detail(option_id)
        history = []
        for exercise in self.exercises.fetch_for_option(option_id):
            sets = self.sets.fetch_for_exercise(exercise["id"])
            if not sets:
                continue
            history.append(
                {
                    "id": exercise["id"],
                    "date": exercise["date"],
                    "name": exercise["name"],
                    "sets": [
                        {
                            "id": sid,
                            "reps": int(reps),
                            "weight": float(weight),
                            "order_index": int(idx),
                        }
                        for sid, reps, weight, idx in sets
                    ],
                }
            )
        history.sort(key=lambda x: x["date"], reverse=True)
        return history

    def training_days(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, object]:
        """Return the distinct days with at least one logged exercise."""
        days = set()
        for exercise in self.exercises.fetch_all_exercises():
            day = exercise["date"][:10]
            if start_date and day < start_date:
                continue
            if end_date and day > end_date:
                continue
            days.add(day)
        ordered = sorted(days)
        return {"days": ordered, "count": len(ordered)}
