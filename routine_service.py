from __future__ import annotations
import datetime
import logging
import sqlite3
from typing import Dict, List, Iterable

from db import (
    DEFAULT_ROUTINE_COLOR,
    RoutineRepository,
    RoutineItemRepository,
    WorkoutOptionRepository,
)
from workout_service import WorkoutService

logger = logging.getLogger(__name__)


class RoutineService:
    """Manage routines and turn them into logged exercises."""

    def __init__(
        self,
        routine_repo: RoutineRepository,
        item_repo: RoutineItemRepository,
        option_repo: WorkoutOptionRepository,
        workouts: WorkoutService,
    ) -> None:
        self.routines = routine_repo
        self.items = item_repo
        self.options = option_repo
        self.workouts = workouts

    def create_routine(
        self,
        name: str,
        option_ids: Iterable[int],
        color_hex: str = DEFAULT_ROUTINE_COLOR,
    ) -> int:
        option_ids = list(option_ids)
        if not option_ids:
            raise ValueError("routine needs at least one option")
        for oid in option_ids:
            self.options.fetch_detail(oid)
        routine_id = self.routines.create(name, color_hex)
        self.items.bulk_add(routine_id, option_ids)
        return routine_id

    def fetch_all(self) -> List[Dict[str, object]]:
        """Return every routine with its items, most used first."""
        return [
            self.fetch_detail(rid) for rid, _n, _c, _f in self.routines.fetch_all_routines()
        ]

    def fetch_detail(self, routine_id: int) -> Dict[str, object]:
        rid, name, color, clicks = self.routines.fetch_detail(routine_id)
        return {
            "id": rid,
            "name": name,
            "color_hex": color,
            "click_frequency": int(clicks),
            "items": [
                {"id": iid, "option_id": oid, "name": oname, "order_index": int(idx)}
                for iid, oid, oname, idx in self.items.fetch_for_routine(rid)
            ],
        }

    def add_item(self, routine_id: int, option_id: int) -> int:
        self.routines.fetch_detail(routine_id)
        self.options.fetch_detail(option_id)
        return self.items.add(routine_id, option_id)

    def remove_item(self, item_id: int) -> None:
        self.items.remove(item_id)

    def reorder_items(self, routine_id: int, order: list[int]) -> None:
        self.routines.fetch_detail(routine_id)
        self.items.reorder(routine_id, order)

    def rename_routine(self, routine_id: int, name: str) -> None:
        self.routines.rename(routine_id, name)

    def delete_routine(self, routine_id: int) -> None:
        self.routines.delete(routine_id)

    def expand(
        self, routine_id: int, now: datetime.datetime | None = None
    ) -> List[int]:
        """Log one new exercise per routine item, in item order.

        Items are created independently: an item that fails is logged and
        skipped, and the exercises already created are kept.
        """
        self.routines.fetch_detail(routine_id)
        created: list[int] = []
        for item_id, option_id, _name, _idx in self.items.fetch_for_routine(routine_id):
            if option_id is None:
                logger.warning("routine %s item %s has no option, skipped", routine_id, item_id)
                continue
            try:
                created.append(self.workouts.create_exercise(option_id, now))
            except (ValueError, sqlite3.Error) as exc:
                logger.warning(
                    "routine %s item %s could not be logged: %s", routine_id, item_id, exc
                )
        self.routines.increment_clicks(routine_id)
        logger.info("expanded routine %s into %d exercises", routine_id, len(created))
        return created
