"""This package defines the controllable loads that a grid event can shed.

The key modules within this package include:
- `models.py`: pydantic `Device` / `DeviceUpsert` models and the `DeviceControl`
  and `DeviceGroup` enumerations.
- `registry.py`: the in-memory `DeviceRegistry`, with on/off toggling, group
  filtering and a priority-ordered shed plan for a target reduction.
- `helper.py`: the `DeviceHelper` enumeration of device commands together with
  static utilities for searching, filtering and sorting device lists.
- `api_calls.py`: the gateway client that forwards commands for non-advisory
  devices to `CORE_API_URL`.
"""
