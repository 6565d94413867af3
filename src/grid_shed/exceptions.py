"""Domain errors raised by the grid engine and mapped to HTTP codes by the API layer."""


class GridError(Exception):
    """Base class for all grid-shed errors."""

    status_code = 400


class DeviceNotFoundError(GridError):
    status_code = 404

    def __init__(self, device_id: str) -> None:
        super().__init__("device not found")
        self.device_id = device_id


class EventNotFoundError(GridError):
    status_code = 404

    def __init__(self, event_id: str) -> None:
        super().__init__("event not found")
        self.event_id = event_id


class EventClosedError(GridError):
    """Raised when stepping or stopping an event that already has an end time."""

    status_code = 409

    def __init__(self, event_id: str) -> None:
        super().__init__("event already stopped")
        self.event_id = event_id


class DispatchError(GridError):
    """Raised when the device gateway rejects or cannot receive a command."""

    status_code = 502

    def __init__(self, device_id: str, command: str, reason: str) -> None:
        super().__init__(f"dispatch of '{command}' to {device_id} failed: {reason}")
        self.device_id = device_id
        self.command = command
