"""Load-reduction estimates for a grid event.

Both estimates are naive. They trust the rated power of each device and take
the action log at face value, without metering. `estimate_reduced_kw` gives
the peak reduction and `estimate_reduced_kwh` the energy that was not drawn
while devices were off.
"""

from datetime import datetime, timezone
from typing import Optional

import pandas as pd

from grid_shed.devices.registry import DeviceRegistry
from grid_shed.events.models import GridEvent


def estimate_reduced_kw(event: GridEvent, devices: DeviceRegistry) -> float:
    """Sums the rated power of every distinct device shed during the event.

    Unknown devices and devices without a power rating count as zero, so the
    result is never negative.
    """
    shed_ids = {action.device_id for action in event.actions if action.action == "shed"}
    kw = 0.0
    for device_id in shed_ids:
        device = devices.get(device_id)
        if device is not None and device.power_kw:
            kw += device.power_kw
    return round(kw, 2)


def _actions_frame(event: GridEvent) -> pd.DataFrame:
    frame = pd.DataFrame(
        [action.model_dump(include={"ts", "device_id", "action"}) for action in event.actions],
        columns=["ts", "device_id", "action"],
    )
    frame = frame[frame["action"].isin(["shed", "restore"])].copy()
    frame["ts"] = pd.to_datetime(frame["ts"], utc=True)
    return frame.sort_values("ts", kind="stable")


def estimate_reduced_kwh(
    event: GridEvent, devices: DeviceRegistry, until: Optional[datetime] = None
) -> float:
    """Integrates rated power over the periods each device spent shed.

    Every `shed` opens an off-period that the next `restore` of the same device
    closes. Periods still open are closed at `until`, which defaults to the
    event end (or now for an open event). Repeated sheds of a device that is
    already off do not restart its period.

    Args:
        event: The grid event whose action log is integrated.
        devices: Registry used to look up the rated power of each device.
        until: Optional cut-off for periods that were never restored.

    Returns:
        The estimated energy reduction in kWh, rounded to two decimals.
    """
    if not event.actions:
        return 0.0

    cutoff = pd.Timestamp(until or event.end_at or datetime.now(timezone.utc))
    if cutoff.tzinfo is None:
        cutoff = cutoff.tz_localize("UTC")

    kwh = 0.0
    for device_id, rows in _actions_frame(event).groupby("device_id", sort=False):
        device = devices.get(device_id)
        if device is None or not device.power_kw:
            continue

        off_hours = 0.0
        shed_since = None
        for ts, action in zip(rows["ts"], rows["action"]):
            if action == "shed" and shed_since is None:
                shed_since = ts
            elif action == "restore" and shed_since is not None:
                off_hours += (ts - shed_since).total_seconds() / 3600
                shed_since = None
        if shed_since is not None and cutoff > shed_since:
            off_hours += (cutoff - shed_since).total_seconds() / 3600

        kwh += device.power_kw * off_hours

    return round(kwh, 2)
