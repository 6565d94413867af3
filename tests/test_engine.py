from datetime import timedelta

import pytest
from pydantic import ValidationError

from grid_shed.devices.models import DeviceUpsert
from grid_shed.events.models import GridSettings, PlaybookStep, PlaybookUpsert
from grid_shed.exceptions import (
    DeviceNotFoundError,
    DispatchError,
    EventClosedError,
    EventNotFoundError,
)


def _on(engine, device_id):
    return next(d for d in engine.list_devices() if d.id == device_id).on


class TestStartEvent:
    def test_without_playbook_has_no_actions(self, engine):
        event = engine.start_event(5.0)
        assert event.actions == []
        assert event.mode == "manual"
        assert event.target_kw == 5.0
        assert event.end_at is None

    def test_playbook_steps_become_system_actions(self, engine, clock):
        event = engine.start_event(6.0, "peak-shed")
        assert [(a.device_id, a.action, a.by, a.note) for a in event.actions] == [
            ("pool-pump", "shed", "system", "playbook"),
            ("corridor-fans", "shed", "system", "playbook"),
            ("laundry", "shed", "system", "playbook"),
        ]
        assert all(a.ts == clock.now for a in event.actions)
        assert event.playbook_id == "peak-shed"

    def test_manual_mode_playbook_is_advisory(self, engine, dispatcher):
        engine.start_event(6.0, "peak-shed")
        assert dispatcher.calls == []
        assert all(d.on for d in engine.list_devices())

    def test_unknown_playbook_is_ignored(self, engine):
        event = engine.start_event(1.0, "missing")
        assert event.actions == []
        assert event.playbook_id is None

    def test_nudge_steps_are_logged_as_nudge(self, engine):
        engine.upsert_playbooks(
            [
                PlaybookUpsert(
                    id="gentle",
                    name="Gentle",
                    steps=[PlaybookStep(device_id="laundry", do="nudge")],
                )
            ]
        )
        event = engine.start_event(0, "gentle")
        assert [a.action for a in event.actions] == ["nudge"]

    def test_events_are_listed_newest_first_with_unique_ids(self, engine):
        first = engine.start_event(1)
        second = engine.start_event(2)
        assert first.id != second.id
        assert [e.id for e in engine.list_events()] == [second.id, first.id]

    def test_non_finite_target_is_zero(self, engine):
        assert engine.start_event(float("nan")).target_kw == 0.0

    def test_event_mode_follows_settings(self, engine):
        engine.update_settings(GridSettings(mode="assist"))
        assert engine.start_event(1).mode == "assist"


class TestAutoMode:
    @pytest.fixture(autouse=True)
    def _auto(self, scheduled_engine):
        scheduled_engine.update_settings(GridSettings(mode="auto", peak_hours=[]))

    def test_playbook_sheds_devices_and_dispatches(self, scheduled_engine, dispatcher):
        scheduled_engine.start_event(6.0, "peak-shed")
        assert dispatcher.calls == [
            ("pool-pump", "shed"),
            ("corridor-fans", "shed"),
            ("laundry", "shed"),
        ]
        assert not any(d.on for d in scheduled_engine.list_devices())

    def test_restore_after_steps_are_scheduled(self, scheduled_engine, scheduler, clock):
        event = scheduled_engine.start_event(6.0, "peak-shed")
        pump_job = scheduler.get_job(f"restore:{event.id}:pool-pump")
        fans_job = scheduler.get_job(f"restore:{event.id}:corridor-fans")
        assert pump_job is not None and fans_job is not None
        assert scheduler.get_job(f"restore:{event.id}:laundry") is None
        # 45 min is within the pump's 30-60 min bounds, 30 min within the fans' 20-45
        assert pump_job.trigger.run_date == clock.now + timedelta(minutes=45)
        assert fans_job.trigger.run_date == clock.now + timedelta(minutes=30)

    def test_restore_delay_is_clamped_to_device_bounds(self, scheduled_engine, scheduler, clock):
        scheduled_engine.upsert_playbooks(
            [
                PlaybookUpsert(
                    id="long",
                    name="Long",
                    steps=[PlaybookStep(device_id="corridor-fans", do="shed", duration_min=120, restore_after=True)],
                )
            ]
        )
        event = scheduled_engine.start_event(1, "long")
        job = scheduler.get_job(f"restore:{event.id}:corridor-fans")
        assert job.trigger.run_date == clock.now + timedelta(minutes=45)

    def test_auto_restore_turns_device_back_on(self, scheduled_engine, clock):
        event = scheduled_engine.start_event(6.0, "peak-shed")
        clock.advance(45)
        scheduled_engine.auto_restore(event.id, "pool-pump")
        assert _on(scheduled_engine, "pool-pump")
        last = scheduled_engine.get_event(event.id).actions[-1]
        assert (last.device_id, last.action, last.by, last.note) == (
            "pool-pump",
            "restore",
            "system",
            "auto-restore",
        )

    def test_stop_applies_pending_restores(self, scheduled_engine, scheduler, clock):
        event = scheduled_engine.start_event(6.0, "peak-shed")
        clock.advance(20)
        stopped = scheduled_engine.stop_event(event.id)
        restores = [a for a in stopped.actions if a.action == "restore"]
        assert {a.device_id for a in restores} == {"pool-pump", "corridor-fans"}
        assert all(a.note == "event stopped" for a in restores)
        assert scheduler.get_jobs() == []
        assert _on(scheduled_engine, "pool-pump")
        # laundry has no restore_after and stays shed
        assert not _on(scheduled_engine, "laundry")
        assert stopped.reduced_kw == 6.7
        # (2.2 + 1.0 + 3.5) kW for 20 minutes
        assert stopped.reduced_kwh == pytest.approx(2.23, abs=0.01)

    def test_failed_dispatch_is_noted_and_skipped(self, scheduled_engine, dispatcher, scheduler):
        dispatcher.fail_for.add("pool-pump")
        event = scheduled_engine.start_event(6.0, "peak-shed")
        pump_action = event.actions[0]
        assert pump_action.note == "playbook; dispatch failed"
        assert _on(scheduled_engine, "pool-pump")
        assert scheduler.get_job(f"restore:{event.id}:pool-pump") is None

    def test_unbounded_shed_is_restored_on_stop(self, scheduled_engine, scheduler):
        scheduled_engine.upsert_devices(
            [DeviceUpsert(id="kitchen-hood", name="Kitchen Hood", priority=2, control="advisory", power_kw=1.5)]
        )
        scheduled_engine.upsert_playbooks(
            [
                PlaybookUpsert(
                    id="hood",
                    name="Hood",
                    steps=[PlaybookStep(device_id="kitchen-hood", do="shed", restore_after=True)],
                )
            ]
        )
        event = scheduled_engine.start_event(1, "hood")
        assert scheduler.get_job(f"restore:{event.id}:kitchen-hood") is None
        assert not _on(scheduled_engine, "kitchen-hood")

        stopped = scheduled_engine.stop_event(event.id)
        assert _on(scheduled_engine, "kitchen-hood")
        assert [(a.action, a.note) for a in stopped.actions] == [
            ("shed", "playbook"),
            ("restore", "event stopped"),
        ]

    def test_restored_device_is_not_restored_again_on_stop(self, scheduled_engine, clock):
        event = scheduled_engine.start_event(6.0, "peak-shed")
        clock.advance(45)
        scheduled_engine.auto_restore(event.id, "pool-pump")
        stopped = scheduled_engine.stop_event(event.id)
        restores = [(a.device_id, a.note) for a in stopped.actions if a.action == "restore"]
        assert restores == [("pool-pump", "auto-restore"), ("corridor-fans", "event stopped")]

    def test_auto_restore_after_stop_is_skipped(self, scheduled_engine):
        event = scheduled_engine.start_event(6.0, "peak-shed")
        stopped = scheduled_engine.stop_event(event.id)
        scheduled_engine.auto_restore(event.id, "pool-pump")
        assert len(scheduled_engine.get_event(event.id).actions) == len(stopped.actions)


def test_auto_mode_without_scheduler_restores_on_stop(engine, clock):
    engine.update_settings(GridSettings(mode="auto"))
    event = engine.start_event(6.0, "peak-shed")
    assert not _on(engine, "pool-pump")

    clock.advance(30)
    stopped = engine.stop_event(event.id)
    restores = [(a.device_id, a.by, a.note) for a in stopped.actions if a.action == "restore"]
    assert restores == [
        ("pool-pump", "system", "event stopped"),
        ("corridor-fans", "system", "event stopped"),
    ]
    assert _on(engine, "pool-pump")
    assert _on(engine, "corridor-fans")
    # (2.2 + 1.0 + 3.5) kW for 30 minutes
    assert stopped.reduced_kwh == pytest.approx(3.35)


class TestStepEvent:
    def test_shed_and_restore_toggle_device(self, engine):
        event = engine.start_event(2)
        engine.step_event(event.id, "pool-pump", "shed", note="too loud")
        assert not _on(engine, "pool-pump")
        updated = engine.step_event(event.id, "pool-pump", "restore")
        assert _on(engine, "pool-pump")
        assert [(a.action, a.by) for a in updated.actions] == [("shed", "staff"), ("restore", "staff")]
        assert updated.actions[0].note == "too loud"

    def test_unknown_device_is_still_recorded(self, engine):
        event = engine.start_event(2)
        updated = engine.step_event(event.id, "ghost", "shed")
        assert updated.actions[-1].device_id == "ghost"

    def test_unknown_event(self, engine):
        with pytest.raises(EventNotFoundError):
            engine.step_event("ev_0", "pool-pump", "shed")

    def test_stopped_event_rejects_steps(self, engine):
        event = engine.start_event(2)
        engine.stop_event(event.id)
        with pytest.raises(EventClosedError):
            engine.step_event(event.id, "pool-pump", "shed")

    def test_dispatch_failure_records_nothing(self, engine, dispatcher):
        dispatcher.fail_for.add("laundry")
        event = engine.start_event(2)
        with pytest.raises(DispatchError):
            engine.step_event(event.id, "laundry", "shed")
        assert engine.get_event(event.id).actions == []
        assert _on(engine, "laundry")

    def test_manual_restore_cancels_scheduled_restore(self, scheduled_engine, scheduler):
        scheduled_engine.update_settings(GridSettings(mode="auto"))
        event = scheduled_engine.start_event(6.0, "peak-shed")
        scheduled_engine.step_event(event.id, "pool-pump", "restore")
        assert scheduler.get_job(f"restore:{event.id}:pool-pump") is None
        assert scheduler.get_job(f"restore:{event.id}:corridor-fans") is not None


class TestStopEvent:
    def test_sets_end_and_non_negative_reduction(self, engine, clock):
        event = engine.start_event(3)
        clock.advance(10)
        stopped = engine.stop_event(event.id)
        assert stopped.end_at == clock.now
        assert stopped.reduced_kw == 0.0
        assert stopped.reduced_kwh == 0.0

    def test_reduction_sums_shed_devices_once(self, engine, clock):
        event = engine.start_event(6, "peak-shed")
        engine.step_event(event.id, "pool-pump", "shed")
        clock.advance(60)
        stopped = engine.stop_event(event.id)
        assert stopped.reduced_kw == 6.7
        assert stopped.reduced_kwh == 6.7

    def test_double_stop_conflicts(self, engine):
        event = engine.start_event(3)
        engine.stop_event(event.id)
        with pytest.raises(EventClosedError):
            engine.stop_event(event.id)

    def test_unknown_event(self, engine):
        with pytest.raises(EventNotFoundError):
            engine.stop_event("nope")

    def test_recorder_receives_stopped_event(self, engine):
        recorded = []
        engine._recorder = type("Recorder", (), {"record": lambda self, e: recorded.append(e)})()
        event = engine.start_event(3)
        engine.stop_event(event.id)
        assert [e.id for e in recorded] == [event.id]
        assert recorded[0].end_at is not None


class TestDevices:
    def test_direct_commands(self, engine, dispatcher):
        assert not engine.shed_device("laundry").on
        assert engine.restore_device("laundry").on
        assert engine.nudge_device("laundry") == 2
        assert dispatcher.calls == [("laundry", "shed"), ("laundry", "restore"), ("laundry", "nudge")]

    @pytest.mark.parametrize("command", ["shed_device", "restore_device", "nudge_device"])
    def test_unknown_device(self, engine, command):
        with pytest.raises(DeviceNotFoundError):
            getattr(engine, command)("ghost")

    def test_upsert_merges_existing_and_appends_new(self, engine):
        items = engine.upsert_devices(
            [
                DeviceUpsert(id="pool-pump", power_kw=3.0),
                DeviceUpsert(id="ev-1", name="EV Charger", priority=2, control="ocpp", group="ev"),
            ]
        )
        pump = next(d for d in items if d.id == "pool-pump")
        assert pump.power_kw == 3.0 and pump.name == "Pool Pump"
        assert items[-1].id == "ev-1" and items[-1].on

    def test_upsert_of_incomplete_new_device_changes_nothing(self, engine):
        before = engine.list_devices()
        with pytest.raises(ValidationError):
            engine.upsert_devices([DeviceUpsert(id="pool-pump", power_kw=1.0), DeviceUpsert(id="x")])
        assert engine.list_devices() == before

    def test_filter_by_group(self, engine):
        assert [d.id for d in engine.list_devices("fans")] == ["corridor-fans"]

    def test_shed_plan_prefers_low_priority(self, engine):
        assert [d.id for d in engine.shed_plan(3.0)] == ["pool-pump", "corridor-fans"]
        assert [d.id for d in engine.shed_plan(100)] == ["pool-pump", "corridor-fans", "laundry"]
        assert engine.shed_plan(0) == []

    def test_shed_plan_skips_devices_already_off(self, engine):
        engine.shed_device("pool-pump")
        assert [d.id for d in engine.shed_plan(1.0)] == ["corridor-fans"]


def test_playbook_upsert_replaces_steps(engine):
    items = engine.upsert_playbooks(
        [PlaybookUpsert(id="peak-shed", steps=[PlaybookStep(device_id="laundry", do="shed")])]
    )
    playbook = next(p for p in items if p.id == "peak-shed")
    assert playbook.name == "Peak-Hour Shed"
    assert [s.device_id for s in playbook.steps] == ["laundry"]


def test_snapshot_counts(engine):
    engine.stop_event(engine.start_event(1).id)
    engine.start_event(1)
    assert engine.snapshot() == {
        "devices": 3,
        "playbooks": 1,
        "events": 2,
        "open_events": 1,
        "mode": "manual",
    }
