import datetime
import logging
from typing import Callable

from fastapi import FastAPI, HTTPException, Body, APIRouter

from db import (
    WorkoutOptionRepository,
    ExerciseRepository,
    SetRepository,
    WorkoutStatRepository,
    MonthlyWorkoutRepository,
    RoutineRepository,
    RoutineItemRepository,
    SettingsRepository,
)
from monthly_service import MonthlyIndexService
from routine_service import RoutineService
from stats_service import StatisticsService
from workout_service import WorkoutService


def _error(exc: ValueError) -> HTTPException:
    detail = str(exc)
    status = 404 if detail.endswith("not found") else 400
    return HTTPException(status_code=status, detail=detail)


def _parse_ids(value: str) -> list[int]:
    try:
        return [int(i) for i in value.split(",") if i]
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="invalid id list; expected comma-separated ids",
        )


def _option_json(option: dict) -> dict:
    data = {k: v for k, v in option.items() if k != "image_data"}
    data["has_image"] = option["image_data"] is not None
    return data


class GymAPI:
    """Provides REST endpoints for workout logging and statistics."""

    def __init__(
        self,
        db_path: str = "workout.db",
        yaml_path: str = "settings.yaml",
        *,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.db_path = db_path
        self.clock = clock or datetime.datetime.now
        self.settings = SettingsRepository(db_path, yaml_path)
        self.options = WorkoutOptionRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.sets = SetRepository(db_path)
        self.stats_repo = WorkoutStatRepository(db_path)
        self.monthly_repo = MonthlyWorkoutRepository(db_path)
        self.routines = RoutineRepository(db_path)
        self.routine_items = RoutineItemRepository(db_path)
        self.workouts = WorkoutService(
            self.options,
            self.exercises,
            self.sets,
            self.settings,
            clock=self.clock,
        )
        self.statistics = StatisticsService(
            self.options, self.exercises, self.sets, self.stats_repo
        )
        self.monthly = MonthlyIndexService(self.monthly_repo, self.exercises, self.sets)
        self.routine_service = RoutineService(
            self.routines, self.routine_items, self.options, self.workouts
        )
        if self.settings.get_bool("backfill_on_start", True):
            self.backfill_missing_months()
        self.app = FastAPI(
            title="Gym API",
            description="REST API for workout logging and statistics",
        )
        self._setup_routes()

    def backfill_missing_months(self) -> int:
        return self.monthly.backfill()

    def _setup_routes(self) -> None:
        options_router = APIRouter(prefix="/options", tags=["Options"])
        exercises_router = APIRouter(prefix="/exercises", tags=["Exercises"])
        routines_router = APIRouter(prefix="/routines", tags=["Routines"])
        stats_router = APIRouter(prefix="/stats", tags=["Statistics"])

        @options_router.get("")
        def list_options(query: str = ""):
            return [
                {"id": oid, "name": name, "category": cat}
                for oid, name, cat in self.workouts.search_options(query)
            ]

        @options_router.post("")
        def create_option(
            name: str,
            category: str = "Chest",
            is_barbell_weight: bool = False,
            timer_seconds: float | None = None,
        ):
            try:
                oid = self.workouts.create_option(
                    name, category, is_barbell_weight, timer_seconds
                )
            except ValueError as e:
                raise _error(e)
            return {"id": oid}

        @options_router.get("/{option_id}")
        def get_option(option_id: int):
            try:
                return _option_json(self.options.fetch_detail(option_id))
            except ValueError as e:
                raise _error(e)

        @options_router.put("/{option_id}")
        def update_option(
            option_id: int,
            name: str | None = None,
            category: str | None = None,
            is_barbell_weight: bool | None = None,
            timer_seconds: float | None = None,
            show_timer: bool | None = None,
        ):
            try:
                self.workouts.update_option(
                    option_id,
                    name=name,
                    category=category,
                    is_barbell_weight=is_barbell_weight,
                    timer_seconds=timer_seconds,
                    show_timer=show_timer,
                )
            except ValueError as e:
                raise _error(e)
            return {"status": "updated"}

        @options_router.put("/{option_id}/image")
        def set_option_image(
            option_id: int,
            data: bytes = Body(b"", media_type="application/octet-stream"),
        ):
            try:
                self.options.set_image(option_id, data or None)
            except ValueError as e:
                raise _error(e)
            return {"status": "updated"}

        @options_router.delete("/{option_id}")
        def delete_option(option_id: int):
            try:
                self.workouts.delete_option(option_id)
            except ValueError as e:
                raise _error(e)
            return {"status": "deleted"}

        @options_router.get("/{option_id}/stats")
        def option_stats(option_id: int):
            try:
                return self.statistics.refresh(option_id)
            except ValueError as e:
                raise _error(e)

        @options_router.get("/{option_id}/history")
        def option_history(option_id: int):
            try:
                return self.statistics.exercise_history(option_id)
            except ValueError as e:
                raise _error(e)

        @options_router.post("/{option_id}/exercises")
        def create_exercise(option_id: int, date: str | None = None):
            try:
                eid = self.workouts.create_exercise(option_id, date)
            except ValueError as e:
                raise _error(e)
            return {"id": eid}

        @exercises_router.get("/{exercise_id}")
        def get_exercise(exercise_id: int):
            try:
                return self.workouts.exercise_detail(exercise_id)
            except ValueError as e:
                raise _error(e)

        @exercises_router.delete("/{exercise_id}")
        def delete_exercise(exercise_id: int):
            try:
                self.workouts.delete_exercise(exercise_id)
            except ValueError as e:
                raise _error(e)
            return {"status": "deleted"}

        @exercises_router.put("/{exercise_id}/option")
        def retype_exercise(exercise_id: int, option_id: int):
            try:
                self.workouts.retype_exercise(exercise_id, option_id)
            except ValueError as e:
                raise _error(e)
            return {"status": "updated"}

        @exercises_router.put("/{exercise_id}/name")
        def rename_exercise(exercise_id: int, name: str):
            try:
                self.workouts.rename_exercise(exercise_id, name)
            except ValueError as e:
                raise _error(e)
            return {"status": "updated"}

        @exercises_router.post("/{exercise_id}/duplicate")
        def duplicate_exercise(exercise_id: int):
            try:
                eid = self.workouts.duplicate_exercise(exercise_id)
            except ValueError as e:
                raise _error(e)
            return {"id": eid}

        @exercises_router.post(
            "/{exercise_id}/sets",
            summary="Add set",
            description="Record a new set; per_side converts plates per side into total bar weight.",
        )
        def add_set(
            exercise_id: int,
            reps: int,
            weight: float,
            per_side: bool = False,
            unit: str | None = None,
        ):
            try:
                sid = self.workouts.add_set(
                    exercise_id, reps, weight, per_side=per_side, unit=unit
                )
            except ValueError as e:
                raise _error(e)
            return {"id": sid}

        @exercises_router.delete("/{exercise_id}/sets/{index}")
        def delete_set_at(exercise_id: int, index: int):
            try:
                self.workouts.delete_set(exercise_id, index)
            except ValueError as e:
                raise _error(e)
            return {"status": "deleted"}

        @exercises_router.post("/{exercise_id}/sets/order")
        def reorder_sets(exercise_id: int, order: str):
            try:
                self.workouts.reorder_sets(exercise_id, _parse_ids(order))
            except ValueError as e:
                raise _error(e)
            return {"status": "updated"}

        @self.app.put("/sets/{set_id}")
        def update_set(
            set_id: int,
            reps: int,
            weight: float,
            per_side: bool = False,
            unit: str | None = None,
        ):
            try:
                self.workouts.update_set(
                    set_id, reps, weight, per_side=per_side, unit=unit
                )
            except ValueError as e:
                raise _error(e)
            return {"status": "updated"}

        @self.app.delete("/sets/{set_id}")
        def delete_set(set_id: int):
            try:
                self.workouts.remove_set(set_id)
            except ValueError as e:
                raise _error(e)
            return {"status": "deleted"}

        @routines_router.get("")
        def list_routines():
            return self.routine_service.fetch_all()

        @routines_router.post("")
        def create_routine(name: str, options: str, color_hex: str = "#10B981"):
            try:
                rid = self.routine_service.create_routine(
                    name, _parse_ids(options), color_hex
                )
            except ValueError as e:
                raise _error(e)
            return {"id": rid}

        @routines_router.get("/{routine_id}")
        def get_routine(routine_id: int):
            try:
                return self.routine_service.fetch_detail(routine_id)
            except ValueError as e:
                raise _error(e)

        @routines_router.put("/{routine_id}")
        def rename_routine(routine_id: int, name: str):
            try:
                self.routine_service.rename_routine(routine_id, name)
            except ValueError as e:
                raise _error(e)
            return {"status": "updated"}

        @routines_router.delete("/{routine_id}")
        def delete_routine(routine_id: int):
            try:
                self.routine_service.delete_routine(routine_id)
            except ValueError as e:
                raise _error(e)
            return {"status": "deleted"}

        @routines_router.post("/{routine_id}/start")
        def start_routine(routine_id: int):
            try:
                ids = self.routine_service.expand(routine_id)
            except ValueError as e:
                raise _error(e)
            return {"exercise_ids": ids}

        @routines_router.post("/{routine_id}/items")
        def add_routine_item(routine_id: int, option_id: int):
            try:
                iid = self.routine_service.add_item(routine_id, option_id)
            except ValueError as e:
                raise _error(e)
            return {"id": iid}

        @routines_router.post("/{routine_id}/items/order")
        def reorder_routine_items(routine_id: int, order: str):
            try:
                self.routine_service.reorder_items(routine_id, _parse_ids(order))
            except ValueError as e:
                raise _error(e)
            return {"status": "updated"}

        @self.app.delete("/routine_items/{item_id}")
        def delete_routine_item(item_id: int):
            try:
                self.routine_service.remove_item(item_id)
            except ValueError as e:
                raise _error(e)
            return {"status": "deleted"}

        @stats_router.get("")
        def all_stats():
            return self.statistics.all_stats()

        @stats_router.get("/frequency")
        def exercise_frequency():
            return self.statistics.exercise_frequency()

        @stats_router.get("/records")
        def personal_records():
            return self.statistics.personal_records()

        @stats_router.get("/training_days")
        def training_days(start_date: str | None = None, end_date: str | None = None):
            return self.statistics.training_days(start_date, end_date)

        @self.app.get("/months")
        def list_months():
            return self.monthly.months()

        @self.app.get("/months/{year}/{month}")
        def month_detail(year: int, month: int):
            summary = self.monthly.month_summary(year, month)
            if summary is None:
                raise HTTPException(status_code=404, detail="month not found")
            summary["training_days"] = self.monthly.training_days_in_month(year, month)
            return summary

        @self.app.get("/days/{day}/exercises")
        def exercises_on_day(day: str):
            try:
                parsed = datetime.date.fromisoformat(day)
            except ValueError:
                raise HTTPException(status_code=400, detail="invalid date")
            return self.monthly.exercises_on_day(parsed)

        @self.app.get("/today")
        def todays_exercises():
            return self.monthly.todays_exercises(self.clock())

        @self.app.get("/history")
        def history(search: str | None = None):
            return self.monthly.grouped_by_date(search)

        @self.app.post("/maintenance/backfill")
        def backfill():
            return {"assigned": self.backfill_missing_months()}

        @self.app.get("/settings")
        def get_settings():
            return self.settings.all_settings()

        @self.app.post("/settings")
        def update_settings(values: dict = Body(...)):
            try:
                self.settings.update(values)
            except ValueError as e:
                raise _error(e)
            return self.settings.all_settings()

        self.app.include_router(options_router)
        self.app.include_router(exercises_router)
        self.app.include_router(routines_router)
        self.app.include_router(stats_router)


api = GymAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")
    uvicorn.run(app)
