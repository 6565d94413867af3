"""This package contains the demand-response event logic.

It covers the full life of a grid event: settings and playbooks, starting an
event, logging shed/restore/nudge actions, timed restores, peak-window
automation, reduction estimates and recording.

The key modules within this package include:
- `models.py`: pydantic models for `GridSettings`, `Playbook` and `GridEvent`.
- `engine.py`: the `GridEngine` state machine that every entry point drives.
- `estimate.py`: kW and kWh reduction estimates over an event's action log.
- `jobs.py`: APScheduler bookkeeping for auto-restores and peak windows.
- `peak_window.py`: parsing of ``HH:MM-HH:MM`` peak-hour windows.
- `playbooks.py`: the in-memory playbook store.
- `recorder.py`: writes stopped events to InfluxDB when configured.
- `rpc.py`: the FastStream Redis subscriber for external grid signals.
"""
