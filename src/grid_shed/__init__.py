"""
The `grid_shed` package implements the demand-response ("grid"/VPP) feature of
a hotel-operations platform.

When the grid is under stress, or electricity is most expensive, a property
can lower its draw by temporarily switching off deferrable loads: pool pumps,
corridor fans, laundry banks. This package keeps track of those loads. It lets
staff (or the system itself in auto mode) run named playbooks of shed/nudge
steps, logs every action in a grid event timeline, and estimates the
resulting reduction in kW and kWh.

Sub-packages:
-------------
- `devices`:
  The controllable loads: pydantic models, the in-memory registry, helpers
  for sorting devices by shedding priority, and the gateway client for devices
  that are not purely advisory.

- `events`:
  The event engine: settings, playbooks, the event state machine, reduction
  estimates, scheduled restores and peak-window automation, the InfluxDB
  recorder and the Redis signal subscriber.

- `api`:
  The FastAPI router, request schemas and error handlers behind the `/grid`
  REST endpoints.

- `seed`:
  The demo state loaded at process start.

- `util`:
  Shared helpers, most notably the centralized logging utility.
"""
