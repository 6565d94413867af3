"""Pydantic models for grid settings, playbooks and grid events."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from grid_shed.events.peak_window import PeakWindow

GridMode = Literal["manual", "assist", "auto"]
GridEventAction = Literal["shed", "restore", "nudge"]
PlayStepAction = Literal["shed", "nudge"]
Actor = Literal["system", "staff", "owner"]


class SafetySettings(BaseModel):
    min_off_minutes: Optional[int] = Field(None, ge=0)
    max_off_minutes: Optional[int] = Field(None, ge=0)
    temperature_floor: Optional[float] = None


class GridSettings(BaseModel):
    """Operating mode and guard rails of the demand-response feature."""

    mode: GridMode = "manual"
    peak_hours: List[str] = Field(default_factory=list, description="HH:MM-HH:MM windows")
    safety: SafetySettings = Field(default_factory=SafetySettings)
    auto_playbook_id: Optional[str] = "peak-shed"

    @field_validator("peak_hours")
    @classmethod
    def _check_peak_hours(cls, value: List[str]) -> List[str]:
        for window in value:
            PeakWindow.parse(window)
        return value


class PlaybookStep(BaseModel):
    device_id: str
    do: PlayStepAction
    duration_min: Optional[int] = Field(None, ge=0)
    restore_after: bool = False


class Playbook(BaseModel):
    """A named, reusable sequence of shed/nudge steps."""

    id: str = Field(..., min_length=1)
    name: str
    steps: List[PlaybookStep] = Field(default_factory=list)


class PlaybookUpsert(BaseModel):
    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    steps: Optional[List[PlaybookStep]] = None


class EventAction(BaseModel):
    ts: datetime
    device_id: str
    action: GridEventAction
    by: Actor
    note: Optional[str] = None


class GridEvent(BaseModel):
    """A time-bounded record of demand-response actions."""

    id: str
    start_at: datetime
    end_at: Optional[datetime] = None
    mode: GridMode
    target_kw: float = 0.0
    reduced_kw: Optional[float] = None
    reduced_kwh: Optional[float] = None
    playbook_id: Optional[str] = None
    actions: List[EventAction] = Field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.end_at is None
