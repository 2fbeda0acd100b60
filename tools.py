import math
from typing import Iterable, Tuple


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    ORM_DIVISOR: float = 30.0

    @classmethod
    def one_rep_max(cls, weight: float, reps: int) -> float:
        """Return the estimated one-rep max as ``weight * (1 + reps / 30)``."""
        if reps < 0:
            raise ValueError("reps must be non-negative")
        return weight * (1.0 + reps / cls.ORM_DIVISOR)

    @classmethod
    def best_one_rep_max(cls, sets: Iterable[Tuple[int, float]]) -> float:
        """Return the highest 1RM estimate over ``(reps, weight)`` pairs."""
        best = 0.0
        for reps, weight in sets:
            best = max(best, cls.one_rep_max(float(weight), int(reps)))
        return best

    @staticmethod
    def max_weight(sets: Iterable[Tuple[int, float]]) -> float:
        best = 0.0
        for _reps, weight in sets:
            best = max(best, float(weight))
        return best

    @staticmethod
    def volume(sets: Iterable[Tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += reps * weight
        return vol


class WeightConverter:
    """Utility for converting between kg and lb and barbell plate loading."""

    KG_TO_LB = 2.20462
    BAR_WEIGHT = 45.0
    UNITS = ("kg", "lb")
    # every persisted weight is a total in this unit
    STORAGE_UNIT = "lb"

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return kg * WeightConverter.KG_TO_LB

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return lb / WeightConverter.KG_TO_LB

    @classmethod
    def convert(cls, value: float, from_unit: str, to_unit: str) -> float:
        if from_unit not in cls.UNITS or to_unit not in cls.UNITS:
            raise ValueError("unit must be 'kg' or 'lb'")
        if from_unit == to_unit:
            return value
        if from_unit == "kg":
            return cls.kg_to_lb(value)
        return cls.lb_to_kg(value)

    @classmethod
    def plates_to_total(cls, per_side: float, bar_weight: float | None = None) -> float:
        """Return total bar weight for ``per_side`` loaded on each sleeve."""
        bar = cls.BAR_WEIGHT if bar_weight is None else bar_weight
        return 2 * per_side + bar

    @classmethod
    def total_to_plates(cls, total: float, bar_weight: float | None = None) -> float:
        bar = cls.BAR_WEIGHT if bar_weight is None else bar_weight
        return (total - bar) / 2

    @classmethod
    def to_storage(
        cls,
        value: float,
        *,
        per_side: bool = False,
        input_unit: str = "lb",
        storage_unit: str = STORAGE_UNIT,
        bar_weight: float | None = None,
    ) -> float:
        """Turn a raw user input into the canonical stored total weight.

        ``bar_weight`` is given in ``input_unit``; the default is a 45 lb bar.
        """
        if not math.isfinite(value):
            raise ValueError("weight must be a finite number")
        if per_side:
            bar = cls._bar_in(input_unit) if bar_weight is None else bar_weight
            value = cls.plates_to_total(value, bar)
        return cls.convert(value, input_unit, storage_unit)

    @classmethod
    def to_display(
        cls,
        stored: float,
        *,
        per_side: bool = False,
        display_unit: str = "lb",
        storage_unit: str = STORAGE_UNIT,
        bar_weight: float | None = None,
    ) -> float:
        """Inverse of :meth:`to_storage`."""
        weight = cls.convert(stored, storage_unit, display_unit)
        if per_side:
            bar = cls._bar_in(display_unit) if bar_weight is None else bar_weight
            weight = cls.total_to_plates(weight, bar)
        return weight

    @classmethod
    def _bar_in(cls, unit: str) -> float:
        return cls.convert(cls.BAR_WEIGHT, "lb", unit)
