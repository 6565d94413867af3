"""This module implements the grid event engine.

The `GridEngine` owns every piece of demand-response state of the process:
the settings, the device registry, the playbook store and the list of grid
events. It starts peak-shed events (optionally expanding a playbook into
timestamped actions), records ad-hoc shed/restore/nudge steps, and finalizes
events with an estimated load reduction.

In `manual` and `assist` modes a playbook is advisory: its steps are logged for
staff to carry out and no device is touched. In `auto` mode the steps are also
applied. Devices are turned off and dispatched to the gateway, and the ones
flagged `restore_after` get a timed restore clamped to their off-duration
bounds.

HTTP requests, scheduler threads and the Redis subscriber all share the
engine, so each public method holds a single re-entrant lock.
"""

import math
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from grid_shed.devices.api_calls import write_device_command
from grid_shed.devices.helper import DeviceHelper
from grid_shed.devices.models import Device, DeviceUpsert
from grid_shed.devices.registry import DeviceRegistry
from grid_shed.events.estimate import estimate_reduced_kw, estimate_reduced_kwh
from grid_shed.events.jobs import GridJobs
from grid_shed.events.models import (
    Actor,
    EventAction,
    GridEvent,
    GridEventAction,
    GridSettings,
    Playbook,
    PlaybookStep,
    PlaybookUpsert,
)
from grid_shed.events.peak_window import PeakWindow
from grid_shed.events.playbooks import PlaybookStore
from grid_shed.events.recorder import EventRecorder
from grid_shed.exceptions import (
    DeviceNotFoundError,
    DispatchError,
    EventClosedError,
    EventNotFoundError,
)
from grid_shed.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

# Advisory nudges do not meter anything; the reported delta is nominal
NUDGE_DELTA = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GridEngine:
    """Coordinates devices, playbooks and grid events for one property."""

    def __init__(
        self,
        settings: GridSettings,
        devices: DeviceRegistry,
        playbooks: PlaybookStore,
        jobs: Optional[GridJobs] = None,
        recorder: Optional[EventRecorder] = None,
        dispatcher: Callable[[Device, str], bool] = write_device_command,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initializes the engine with its stores and collaborators.

        Args:
            settings: The initial grid settings.
            devices: The device registry.
            playbooks: The playbook store.
            jobs: Scheduler adapter for auto-restores and peak windows. Without
                  it, restores only happen when an event is stopped.
            recorder: Optional recorder invoked with each stopped event.
            dispatcher: Callable sending a command to a device.
            clock: Returns the current, timezone-aware time.
        """
        self._settings = settings
        self._devices = devices
        self._playbooks = playbooks
        self._jobs = jobs
        self._recorder = recorder
        self._dispatch = dispatcher
        self._clock = clock
        self._events: List[GridEvent] = []
        self._peak_event_id: Optional[str] = None
        # event id -> devices shed with restore_after and not yet restored
        self._pending_restores: Dict[str, List[str]] = {}
        self._lock = threading.RLock()

    @property
    def settings(self) -> GridSettings:
        with self._lock:
            return self._settings.model_copy(deep=True)

    def update_settings(self, settings: GridSettings) -> GridSettings:
        """Replaces the settings wholesale and re-syncs the peak-window jobs."""
        with self._lock:
            switched_to_auto = self._settings.mode != "auto" and settings.mode == "auto"
            self._settings = settings
            logger.info("Grid settings updated, mode %s", settings.mode)
        self.sync_peak_windows(start_inside_window=switched_to_auto)
        return self.settings

    def sync_peak_windows(self, start_inside_window: bool = True) -> None:
        """Schedules the peak-window jobs of auto mode, or clears them otherwise.

        Args:
            start_inside_window: Start the automatic event right away when the
                                 current time already falls in a window. Used at
                                 startup and when auto mode is switched on, so
                                 an event stopped by staff is not restarted by
                                 an unrelated settings change.
        """
        if self._jobs is None:
            return

        settings = self.settings
        windows = []
        if settings.mode == "auto":
            windows = [PeakWindow.parse(window) for window in settings.peak_hours]
        self._jobs.sync_peak_windows(windows, self.start_peak_event, self.stop_peak_event)

        if not start_inside_window:
            return
        now = self._clock().astimezone(self._jobs.timezone).time()
        if any(window.contains(now) for window in windows):
            self.start_peak_event()

    def list_devices(self, group: Optional[str] = None) -> List[Device]:
        with self._lock:
            if group is not None:
                return self._devices.by_group(group)
            return self._devices.all()

    def upsert_devices(self, patches: List[DeviceUpsert]) -> List[Device]:
        with self._lock:
            return self._devices.upsert(patches)

    def shed_plan(self, target_kw: float) -> List[Device]:
        with self._lock:
            return self._devices.shed_plan(target_kw)

    def shed_device(self, device_id: str) -> Device:
        return self._command_device(device_id, DeviceHelper.SHED.value)

    def restore_device(self, device_id: str) -> Device:
        return self._command_device(device_id, DeviceHelper.RESTORE.value)

    def nudge_device(self, device_id: str) -> int:
        self._command_device(device_id, DeviceHelper.NUDGE.value)
        return NUDGE_DELTA

    def _command_device(self, device_id: str, command: str) -> Device:
        """Dispatches a direct command and mirrors it in the device state.

        Raises:
            DeviceNotFoundError: If the device id is unknown.
            DispatchError: If the gateway rejects the command; state is left as is.
        """
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                raise DeviceNotFoundError(device_id)
            self._dispatch(device, command)
            updated = self._apply_device_state(device_id, command) or device
            logger.info("Device %s: %s (on=%s)", device_id, command, updated.on)
            return updated

    def _apply_device_state(self, device_id: str, action: str) -> Optional[Device]:
        if action == DeviceHelper.SHED.value:
            return self._devices.set_on(device_id, False)
        if action == DeviceHelper.RESTORE.value:
            return self._devices.set_on(device_id, True)
        return self._devices.get(device_id)

    def list_playbooks(self) -> List[Playbook]:
        with self._lock:
            return self._playbooks.all()

    def upsert_playbooks(self, patches: List[PlaybookUpsert]) -> List[Playbook]:
        with self._lock:
            playbooks = self._playbooks.upsert(patches)
            devices = self._devices.all()
            for patch in patches:
                for step in patch.steps or []:
                    if not DeviceHelper.device_exists(devices, step.device_id):
                        logger.warning(
                            "Playbook %s references unknown device %s",
                            patch.id,
                            step.device_id,
                        )
            return playbooks

    def list_events(self) -> List[GridEvent]:
        with self._lock:
            return [event.model_copy(deep=True) for event in self._events]

    def get_event(self, event_id: str) -> GridEvent:
        with self._lock:
            return self._find_event(event_id).model_copy(deep=True)

    def latest_open_event(self) -> Optional[GridEvent]:
        with self._lock:
            event = next((e for e in self._events if e.is_open), None)
            return event.model_copy(deep=True) if event else None

    def start_event(self, target_kw: float = 0.0, playbook_id: Optional[str] = None) -> GridEvent:
        """Creates a new grid event and expands the playbook, if any, into actions.

        Args:
            target_kw: The requested load reduction in kW.
            playbook_id: Optional playbook whose steps are logged (and applied in
                         auto mode). Unknown ids are ignored.

        Returns:
            A copy of the new event.
        """
        with self._lock:
            now = self._clock()
            event = GridEvent(
                id=self._next_event_id(now),
                start_at=now,
                mode=self._settings.mode,
                target_kw=target_kw if math.isfinite(target_kw) else 0.0,
            )

            playbook = self._playbooks.get(playbook_id) if playbook_id else None
            if playbook_id and playbook is None:
                logger.warning("Playbook %s not found, event %s starts empty", playbook_id, event.id)

            if playbook is not None:
                event.playbook_id = playbook.id
                for step in playbook.steps:
                    action = EventAction(
                        ts=now, device_id=step.device_id, action=step.do, by="system", note="playbook"
                    )
                    event.actions.append(action)
                    if event.mode == "auto":
                        self._apply_step(event, step, action)

            self._events.insert(0, event)
            logger.info(
                "Grid event %s started in %s mode, target %.2f kW, %d actions",
                event.id,
                event.mode,
                event.target_kw,
                len(event.actions),
            )
            return event.model_copy(deep=True)

    def step_event(
        self,
        event_id: str,
        device_id: str,
        action: GridEventAction,
        note: Optional[str] = None,
        by: Actor = "staff",
    ) -> GridEvent:
        """Appends an ad-hoc action to an open event.

        Unknown devices are still recorded; known ones have their state updated
        and, when not advisory, receive the command through the gateway.

        Raises:
            EventNotFoundError: If the event id is unknown.
            EventClosedError: If the event was already stopped.
            DispatchError: If the gateway rejects the command; nothing is recorded.
        """
        with self._lock:
            event = self._find_event(event_id)
            if not event.is_open:
                raise EventClosedError(event_id)

            device = self._devices.get(device_id)
            if device is not None:
                self._dispatch(device, action)
                self._apply_device_state(device_id, action)
                if action == DeviceHelper.RESTORE.value:
                    self._drop_pending_restore(event_id, device_id)
                    if self._jobs is not None:
                        self._jobs.cancel_restore(event_id, device_id)
            else:
                logger.warning("Event %s: %s recorded for unknown device %s", event_id, action, device_id)

            event.actions.append(
                EventAction(ts=self._clock(), device_id=device_id, action=action, by=by, note=note)
            )
            return event.model_copy(deep=True)

    def stop_event(self, event_id: str) -> GridEvent:
        """Finalizes an event and computes its estimated reduction.

        Restores still pending for the event are applied immediately.

        Raises:
            EventNotFoundError: If the event id is unknown.
            EventClosedError: If the event was already stopped.
        """
        with self._lock:
            event = self._find_event(event_id)
            if not event.is_open:
                raise EventClosedError(event_id)

            if self._jobs is not None:
                self._jobs.cancel_restores(event_id)
            for device_id in self._pending_restores.pop(event_id, []):
                self._restore_for_event(event, device_id, note="event stopped")

            event.end_at = self._clock()
            event.reduced_kw = estimate_reduced_kw(event, self._devices)
            event.reduced_kwh = estimate_reduced_kwh(event, self._devices)
            if self._peak_event_id == event_id:
                self._peak_event_id = None

            logger.info(
                "Grid event %s stopped, estimated reduction %.2f kW / %.2f kWh",
                event.id,
                event.reduced_kw,
                event.reduced_kwh,
            )
            stopped = event.model_copy(deep=True)

        if self._recorder is not None:
            self._recorder.record(stopped)
        return stopped

    def start_peak_event(self) -> Optional[GridEvent]:
        """Starts the automatic event of a peak window, unless one is running."""
        with self._lock:
            if self._peak_event_id is not None:
                logger.info("Peak event %s already running", self._peak_event_id)
                return None
            settings = self._settings
            if settings.mode != "auto":
                logger.info("Peak window reached in %s mode, no automatic event", settings.mode)
                return None
            event = self.start_event(0.0, settings.auto_playbook_id)
            self._peak_event_id = event.id
            return event

    def stop_peak_event(self) -> Optional[GridEvent]:
        with self._lock:
            event_id = self._peak_event_id
            if event_id is None:
                return None
            try:
                return self.stop_event(event_id)
            except EventClosedError:
                self._peak_event_id = None
                return None

    def _find_event(self, event_id: str) -> GridEvent:
        event = next((e for e in self._events if e.id == event_id), None)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    def _next_event_id(self, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        existing = {event.id for event in self._events}
        while f"ev_{millis}" in existing:
            millis += 1
        return f"ev_{millis}"

    def _apply_step(self, event: GridEvent, step: PlaybookStep, action: EventAction) -> None:
        """Carries out a playbook step in auto mode."""
        device = self._devices.get(step.device_id)
        if device is None:
            logger.warning("Event %s: playbook device %s not registered", event.id, step.device_id)
            return

        try:
            self._dispatch(device, step.do)
        except DispatchError as e:
            logger.error("Event %s: step on %s not applied: %s", event.id, device.id, e)
            action.note = "playbook; dispatch failed"
            return

        self._apply_device_state(device.id, step.do)
        if step.do != DeviceHelper.SHED.value or not step.restore_after:
            return

        pending = self._pending_restores.setdefault(event.id, [])
        if device.id not in pending:
            pending.append(device.id)

        delay = self._restore_delay(device, step)
        if delay is None:
            logger.info("Event %s: %s stays shed until the event stops", event.id, device.id)
            return
        if self._jobs is None:
            logger.info("Event %s: no scheduler, %s restores on stop", event.id, device.id)
            return
        self._jobs.schedule_restore(
            event.id, device.id, action.ts + timedelta(minutes=delay), self.auto_restore
        )

    def _restore_delay(self, device: Device, step: PlaybookStep) -> Optional[int]:
        """Clamps a step's duration to the device's (or the safety) off-duration bounds."""
        safety = self._settings.safety
        lower = device.min_off if device.min_off is not None else safety.min_off_minutes
        upper = device.max_off if device.max_off is not None else safety.max_off_minutes

        delay = step.duration_min if step.duration_min is not None else upper
        if delay is None:
            return None
        if lower is not None:
            delay = max(delay, lower)
        if upper is not None:
            delay = min(delay, upper)
        return delay

    def auto_restore(self, event_id: str, device_id: str) -> None:
        """Scheduler callback turning a device back on after its shed duration."""
        with self._lock:
            try:
                event = self._find_event(event_id)
            except EventNotFoundError:
                logger.warning("Auto-restore for unknown event %s skipped", event_id)
                return
            if not event.is_open:
                logger.info("Event %s already stopped, auto-restore of %s skipped", event_id, device_id)
                return
            self._restore_for_event(event, device_id, note="auto-restore")

    def _restore_for_event(self, event: GridEvent, device_id: str, note: str) -> None:
        device = self._devices.get(device_id)
        if device is None:
            return
        try:
            self._dispatch(device, DeviceHelper.RESTORE.value)
        except DispatchError as e:
            logger.error("Event %s: restore of %s failed: %s", event.id, device_id, e)
            return
        self._devices.set_on(device_id, True)
        self._drop_pending_restore(event.id, device_id)
        event.actions.append(
            EventAction(
                ts=self._clock(),
                device_id=device_id,
                action=DeviceHelper.RESTORE.value,
                by="system",
                note=note,
            )
        )
        logger.info("Event %s: %s restored (%s)", event.id, device_id, note)

    def _drop_pending_restore(self, event_id: str, device_id: str) -> None:
        pending = self._pending_restores.get(event_id)
        if pending and device_id in pending:
            pending.remove(device_id)

    def snapshot(self) -> Dict[str, Any]:
        """Returns counters describing the engine state, used by the health check."""
        with self._lock:
            return {
                "devices": len(self._devices.all()),
                "playbooks": len(self._playbooks.all()),
                "events": len(self._events),
                "open_events": sum(1 for event in self._events if event.is_open),
                "mode": self._settings.mode,
            }
