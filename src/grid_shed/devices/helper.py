from enum import Enum
from typing import Any, List

from grid_shed.devices.models import Device


class DeviceHelper(Enum):
    """An enumeration of device commands plus helper utilities over device lists.

    This class serves two purposes:
    1. It provides the standard command names sent to devices during a grid
       event ('shed', 'restore', 'nudge').
    2. It offers static methods for common operations on lists of devices,
       such as lookup, filtering and sorting by shedding priority.
    """

    SHED = "shed"
    RESTORE = "restore"
    NUDGE = "nudge"

    @staticmethod
    def device_exists(devices: List[Device], device_id: str) -> bool:
        """Checks if a device with a specific ID exists in a list of devices.

        Args:
            devices: A list of devices.
            device_id: The ID of the device to search for.

        Returns:
            True if a device with the given ID is found, False otherwise.
        """
        return any(device.id == device_id for device in devices)

    @staticmethod
    def get_all_devices_by_key(
        devices: List[Device], filter_key: str, filter_value: Any
    ) -> List[Device]:
        """Filters a list of devices based on a field/value pair.

        Args:
            devices: The list of devices to filter.
            filter_key: The field to be used for filtering (e.g., 'group', 'control').
            filter_value: The value that the `filter_key` should match.

        Returns:
            A list of devices that match the filtering criteria.
        """
        return [
            device for device in devices if getattr(device, filter_key, None) == filter_value
        ]

    @staticmethod
    def sort_devices_by_priorities(devices: List[Device]) -> List[Device]:
        """Sorts devices in ascending order of their 'priority' value.

        Lower priorities are shed first. The sort is stable so devices sharing a
        priority keep their registration order.
        """
        return sorted(devices, key=lambda device: device.priority)

    @staticmethod
    def total_power(devices: List[Device]) -> float:
        """Sums the rated power of the given devices, ignoring unrated ones."""
        return sum(device.power_kw or 0.0 for device in devices)
