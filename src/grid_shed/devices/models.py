"""Pydantic models describing the controllable loads of a property."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DeviceControl(str, Enum):
    """How a device is actuated.

    Only `ADVISORY` devices are handled locally; every other control type is
    forwarded to the device gateway.
    """

    ADVISORY = "advisory"
    PLUG = "plug"
    RELAY = "relay"
    IR = "ir"
    BMS = "bms"
    OCPP = "ocpp"


class DeviceGroup(str, Enum):
    PUMPS = "pumps"
    FANS = "fans"
    LAUNDRY = "laundry"
    KITCHEN = "kitchen"
    LIGHTING = "lighting"
    HVAC = "hvac"
    EV = "ev"


class Device(BaseModel):
    """A controllable load that may be shed during a grid event."""

    id: str = Field(..., min_length=1)
    name: str
    group: Optional[DeviceGroup] = None
    priority: int = Field(..., ge=1, le=3, description="1 is shed first")
    control: DeviceControl
    on: bool = True
    power_kw: Optional[float] = Field(None, ge=0, description="Rated power in kW")
    min_off: Optional[int] = Field(None, ge=0, description="Minimum off time in minutes")
    max_off: Optional[int] = Field(None, ge=0, description="Maximum off time in minutes")


class DeviceUpsert(BaseModel):
    """Partial device body accepted by POST /grid/devices.

    Only `id` is mandatory here; the remaining required fields are enforced
    when the upsert creates a new device.
    """

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    group: Optional[DeviceGroup] = None
    priority: Optional[int] = Field(None, ge=1, le=3)
    control: Optional[DeviceControl] = None
    on: Optional[bool] = None
    power_kw: Optional[float] = Field(None, ge=0)
    min_off: Optional[int] = Field(None, ge=0)
    max_off: Optional[int] = Field(None, ge=0)
