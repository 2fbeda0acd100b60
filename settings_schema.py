from typing import Literal

from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    theme: str = "dark"
    language: str = "en"
    weight_unit: Literal["kg", "lb"] = "lb"
    bar_weight: float = Field(default=45.0, ge=0)
    default_timer_seconds: float = Field(default=90, ge=0)
    backfill_on_start: bool = True


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
