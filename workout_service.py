from __future__ import annotations
import datetime
import logging
import sqlite3
from typing import Callable, Dict, List, Optional

from db import (
    CATEGORIES,
    DEFAULT_TIMER_SECONDS,
    WorkoutOptionRepository,
    ExerciseRepository,
    SetRepository,
    SettingsRepository,
)
from tools import MathTools, WeightConverter

logger = logging.getLogger(__name__)


class WorkoutService:
    """Write operations on options, exercises and sets.

    These are the only code paths that change logged data. Each one bumps the
    ``last_updated`` watermark of every option whose statistics it affects,
    in the same transaction as the change itself.
    """

    def __init__(
        self,
        option_repo: WorkoutOptionRepository,
        exercise_repo: ExerciseRepository,
        set_repo: SetRepository,
        settings_repo: SettingsRepository | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.options = option_repo
        self.exercises = exercise_repo
        self.sets = set_repo
        self.settings = settings_repo
        self.clock = clock or datetime.datetime.now

    def _now(self) -> datetime.datetime:
        return self.clock()

    def _touch(
        self,
        option_id: Optional[int],
        now: datetime.datetime,
        conn: sqlite3.Connection,
    ) -> None:
        if option_id is not None:
            self.options.touch(option_id, now, conn=conn)

    @staticmethod
    def _as_datetime(value: datetime.date | datetime.datetime | str) -> datetime.datetime:
        if isinstance(value, str):
            value = datetime.datetime.fromisoformat(value)
        if not isinstance(value, datetime.datetime):
            value = datetime.datetime.combine(value, datetime.time())
        return value

    def _default_timer(self) -> float:
        if self.settings is None:
            return DEFAULT_TIMER_SECONDS
        return self.settings.get_float("default_timer_seconds", DEFAULT_TIMER_SECONDS)

    # options -------------------------------------------------------------

    def create_option(
        self,
        name: str,
        category: str = CATEGORIES[0],
        is_barbell_weight: bool = False,
        timer_seconds: float | None = None,
        image_data: bytes | None = None,
    ) -> int:
        if timer_seconds is None:
            timer_seconds = self._default_timer()
        return self.options.add(
            name,
            category,
            self._now(),
            is_barbell_weight=is_barbell_weight,
            timer_seconds=timer_seconds,
            image_data=image_data,
        )

    def find_or_create_option(
        self,
        name: str,
        category: str = CATEGORIES[0],
        conn: sqlite3.Connection | None = None,
    ) -> int:
        """Return the option called ``name`` (any case), creating it if needed."""
        existing = self.options.find_by_name(name, conn=conn)
        if existing is not None:
            return existing
        return self.options.add(
            name,
            category,
            self._now(),
            timer_seconds=self._default_timer(),
            conn=conn,
        )

    def rename_option(self, option_id: int, name: str) -> None:
        self.options.rename(option_id, name, self._now())

    def update_option(
        self,
        option_id: int,
        *,
        name: str | None = None,
        category: str | None = None,
        is_barbell_weight: bool | None = None,
        timer_seconds: float | None = None,
        show_timer: bool | None = None,
    ) -> None:
        """Change several option fields in one step; nothing is saved on error."""
        self.options.update(
            option_id,
            self._now(),
            name=name,
            category=category,
            is_barbell_weight=is_barbell_weight,
            timer_seconds=timer_seconds,
            show_timer=show_timer,
        )

    def delete_option(self, option_id: int) -> None:
        """Delete an option; its exercises stay behind under their stored name."""
        self.options.delete(option_id)
        logger.info("deleted option %s", option_id)

    def search_options(self, query: str) -> List[tuple[int, str, str]]:
        return self.options.search(query)

    # exercises -----------------------------------------------------------

    def create_exercise(
        self,
        option_id: int,
        date: datetime.date | datetime.datetime | str | None = None,
    ) -> int:
        now = self._now()
        when = now if date is None else self._as_datetime(date)
        with self.exercises.transaction() as conn:
            option = self.options.fetch_detail(option_id, conn=conn)
            exercise_id = self.exercises.add(option_id, when, option["name"], conn=conn)
            self.options.touch(option_id, now, conn=conn)
        return exercise_id

    def delete_exercise(self, exercise_id: int) -> None:
        now = self._now()
        with self.exercises.transaction() as conn:
            exercise = self.exercises.fetch_detail(exercise_id, conn=conn)
            option_id = exercise["option_id"]
            self.exercises.remove(exercise_id, conn=conn)
            self._touch(option_id, now, conn)

    def retype_exercise(self, exercise_id: int, option_id: int) -> None:
        """Move an exercise to another option, invalidating both."""
        now = self._now()
        with self.exercises.transaction() as conn:
            exercise = self.exercises.fetch_detail(exercise_id, conn=conn)
            option = self.options.fetch_detail(option_id, conn=conn)
            previous = exercise["option_id"]
            self.exercises.set_option(exercise_id, option_id, option["name"], conn=conn)
            if previous != option_id:
                self._touch(previous, now, conn)
            self.options.touch(option_id, now, conn=conn)

    def duplicate_exercise(self, exercise_id: int) -> int:
        """Copy an exercise and its set values into a new entry dated now.

        An orphaned source is copied under the option matching its stored
        name, which is created when none exists.
        """
        now = self._now()
        with self.exercises.transaction() as conn:
            exercise = self.exercises.fetch_detail(exercise_id, conn=conn)
            sets = self.sets.fetch_for_exercise(exercise_id, conn=conn)
            option_id = exercise["option_id"]
            if option_id is None:
                option_id = self.find_or_create_option(
                    exercise["name"], CATEGORIES[0], conn=conn
                )
                logger.info(
                    "attached copy of orphaned exercise %s to option %s",
                    exercise_id,
                    option_id,
                )
            new_id = self.exercises.add(option_id, now, exercise["name"], conn=conn)
            for _sid, reps, weight, _idx in sets:
                self.sets.add(new_id, reps, weight, conn=conn)
            self.options.touch(option_id, now, conn=conn)
        return new_id

    def rename_exercise(self, exercise_id: int, name: str) -> None:
        """Set the stored display name; the option is left untouched."""
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("name cannot be empty")
        self.exercises.fetch_detail(exercise_id)
        self.exercises.update_name(exercise_id, cleaned)

    def exercise_detail(self, exercise_id: int) -> Dict[str, object]:
        exercise = self.exercises.fetch_detail(exercise_id)
        sets = self.sets.fetch_for_exercise(exercise_id)
        pairs = [(int(r), float(w)) for _sid, r, w, _idx in sets]
        exercise["sets"] = [
            {
                "id": sid,
                "reps": int(r),
                "weight": float(w),
                "display_weight": self.display_weight(w),
                "order_index": int(idx),
            }
            for sid, r, w, idx in sets
        ]
        exercise["total_sets"] = len(sets)
        exercise["max_weight"] = MathTools.max_weight(pairs)
        exercise["one_rep_max"] = MathTools.best_one_rep_max(pairs)
        return exercise

    # sets ----------------------------------------------------------------

    def _units(self) -> tuple[str, float]:
        """Return the preferred input unit and the bar weight in pounds."""
        if self.settings is None:
            return WeightConverter.STORAGE_UNIT, WeightConverter.BAR_WEIGHT
        return (
            self.settings.get_text("weight_unit", WeightConverter.STORAGE_UNIT),
            self.settings.get_float("bar_weight", WeightConverter.BAR_WEIGHT),
        )

    def _storage_weight(
        self, weight: float, per_side: bool, unit: str | None
    ) -> float:
        preferred, bar = self._units()
        input_unit = unit or preferred
        return WeightConverter.to_storage(
            float(weight),
            per_side=per_side,
            input_unit=input_unit,
            bar_weight=WeightConverter.convert(
                bar, WeightConverter.STORAGE_UNIT, input_unit
            ),
        )

    def display_weight(
        self, stored: float, *, per_side: bool = False, unit: str | None = None
    ) -> float:
        """Show a stored total in the preferred unit, optionally per side."""
        preferred, bar = self._units()
        display_unit = unit or preferred
        return WeightConverter.to_display(
            float(stored),
            per_side=per_side,
            display_unit=display_unit,
            bar_weight=WeightConverter.convert(
                bar, WeightConverter.STORAGE_UNIT, display_unit
            ),
        )

    def add_set(
        self,
        exercise_id: int,
        reps: int,
        weight: float,
        *,
        per_side: bool = False,
        unit: str | None = None,
    ) -> int:
        stored = self._storage_weight(weight, per_side, unit)
        SetRepository.validate(reps, stored)
        now = self._now()
        with self.sets.transaction() as conn:
            exercise = self.exercises.fetch_detail(exercise_id, conn=conn)
            set_id = self.sets.add(exercise_id, reps, stored, conn=conn)
            self._touch(exercise["option_id"], now, conn)
        return set_id

    def update_set(
        self,
        set_id: int,
        reps: int,
        weight: float,
        *,
        per_side: bool = False,
        unit: str | None = None,
    ) -> None:
        stored = self._storage_weight(weight, per_side, unit)
        SetRepository.validate(reps, stored)
        now = self._now()
        with self.sets.transaction() as conn:
            exercise_id = self.sets.fetch_exercise_id(set_id, conn=conn)
            exercise = self.exercises.fetch_detail(exercise_id, conn=conn)
            self.sets.update(set_id, reps, stored, conn=conn)
            self._touch(exercise["option_id"], now, conn)

    def remove_set(self, set_id: int) -> None:
        now = self._now()
        with self.sets.transaction() as conn:
            exercise_id = self.sets.fetch_exercise_id(set_id, conn=conn)
            exercise = self.exercises.fetch_detail(exercise_id, conn=conn)
            self.sets.remove(set_id, conn=conn)
            self.sets.synchronize_indices(exercise_id, conn=conn)
            self._touch(exercise["option_id"], now, conn)

    def delete_set(self, exercise_id: int, index: int) -> None:
        """Remove the set at position ``index`` of an exercise."""
        now = self._now()
        with self.sets.transaction() as conn:
            exercise = self.exercises.fetch_detail(exercise_id, conn=conn)
            sets = self.sets.fetch_for_exercise(exercise_id, conn=conn)
            if not 0 <= index < len(sets):
                raise ValueError("set index out of range")
            self.sets.remove(sets[index][0], conn=conn)
            self.sets.synchronize_indices(exercise_id, conn=conn)
            self._touch(exercise["option_id"], now, conn)

    def reorder_sets(self, exercise_id: int, order: list[int]) -> None:
        """Persist a new order given as the full list of set ids."""
        now = self._now()
        with self.sets.transaction() as conn:
            exercise = self.exercises.fetch_detail(exercise_id, conn=conn)
            self.sets.set_order(exercise_id, order, conn=conn)
            self.sets.synchronize_indices(exercise_id, conn=conn)
            self._touch(exercise["option_id"], now, conn)

    def move_set(self, exercise_id: int, source: int, destination: int) -> None:
        ids = [row[0] for row in self.sets.fetch_for_exercise(exercise_id)]
        if not 0 <= source < len(ids) or not 0 <= destination < len(ids):
            raise ValueError("set index out of range")
        ids.insert(destination, ids.pop(source))
        self.reorder_sets(exercise_id, ids)

    def synchronize_indices(self, exercise_id: int) -> None:
        self.exercises.fetch_detail(exercise_id)
        self.sets.synchronize_indices(exercise_id)
