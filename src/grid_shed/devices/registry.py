from typing import List, Optional

from grid_shed.devices.helper import DeviceHelper
from grid_shed.devices.models import Device
from grid_shed.store import InMemoryStore


class DeviceRegistry(InMemoryStore[Device]):
    """Registry of the property's controllable loads."""

    model = Device

    def set_on(self, device_id: str, on: bool) -> Optional[Device]:
        """Flips the on/off flag of a device.

        Returns:
            The updated device, or None if the id is unknown.
        """
        device = self.get(device_id)
        if device is None:
            return None
        updated = device.model_copy(update={"on": on})
        self.replace(updated)
        return updated

    def by_group(self, group: str) -> List[Device]:
        return DeviceHelper.get_all_devices_by_key(self.all(), "group", group)

    def shed_plan(self, target_kw: float) -> List[Device]:
        """Picks running devices, lowest priority first, until `target_kw` is covered.

        Devices without a power rating never contribute and are skipped. If the
        running load cannot cover the target, every rated running device is
        returned.
        """
        candidates = DeviceHelper.sort_devices_by_priorities(
            [device for device in self.all() if device.on and device.power_kw]
        )
        plan: List[Device] = []
        for device in candidates:
            if DeviceHelper.total_power(plan) >= target_kw:
                break
            plan.append(device)
        return plan
