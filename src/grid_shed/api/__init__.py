"""
The `api` package exposes the grid engine over HTTP with FastAPI.

- [`routes.py`](src/grid_shed/api/routes.py): the `/grid` router (settings,
  devices, playbooks, events and direct device control).
- [`schemas.py`](src/grid_shed/api/schemas.py): request bodies for starting and
  stepping events.
- [`errors.py`](src/grid_shed/api/errors.py): exception handlers rendering every
  failure as a JSON ``{"error": ...}`` body.
"""
