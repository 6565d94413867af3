"""Request bodies of the grid endpoints that are not plain domain models."""

import math
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from grid_shed.events.models import Actor, GridEventAction


class StartEventRequest(BaseModel):
    target_kw: float = Field(0.0, description="Requested reduction in kW")
    playbook_id: Optional[str] = None

    @field_validator("target_kw", mode="before")
    @classmethod
    def _coerce_target(cls, value: Any) -> float:
        # Anything that is not a finite number counts as no target
        try:
            target = float(value)
        except (TypeError, ValueError):
            return 0.0
        return target if math.isfinite(target) else 0.0


class StepRequest(BaseModel):
    device_id: str = Field(..., min_length=1)
    action: GridEventAction
    note: Optional[str] = None
    by: Actor = "staff"
