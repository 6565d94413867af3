"""This module provides the calls used to actuate devices through the device gateway.

Devices whose control type is not `advisory` (smart plugs, relays, IR blasters,
BMS points, OCPP chargers) are driven by an external gateway exposed at
`CORE_API_URL`. The functions below are the only place the service talks to
that gateway.
"""

import os

import requests

from grid_shed.devices.models import Device, DeviceControl
from grid_shed.exceptions import DispatchError
from grid_shed.util.logging import LoggingUtil

# Configure and start the logger
logger = LoggingUtil.get_logger(__name__)


def write_device_command(device: Device, command: str) -> bool:
    """Sends a shed/restore/nudge command for a device to the gateway.

    Advisory devices are never sent anywhere: staff act on them by hand, so the
    command is only logged. The same happens when no gateway is configured.

    Args:
        device: The device to actuate.
        command: One of 'shed', 'restore' or 'nudge'.

    Returns:
        True if the command was delivered to the gateway, False if it was only
        logged.

    Raises:
        DispatchError: If the gateway call fails (connection error, timeout or
                       a 4xx/5xx status code).
    """
    if device.control == DeviceControl.ADVISORY:
        logger.info("Advisory %s for device %s, no dispatch", command, device.id)
        return False

    core_api_url = os.getenv("CORE_API_URL")
    if not core_api_url:
        logger.warning(
            "CORE_API_URL not set, %s for %s device %s only logged",
            command,
            device.control.value,
            device.id,
        )
        return False

    api_url = f"{core_api_url}/devices/{device.id}/{command}"
    payload = {"control": device.control.value, "power_kw": device.power_kw}

    try:
        response = requests.post(
            api_url, json=payload, timeout=float(os.getenv("DISPATCH_TIMEOUT", "10"))
        )
        response.raise_for_status()  # Raise an error for bad responses (4xx, 5xx)
    except requests.RequestException as e:
        logger.error("Failed to dispatch %s to device %s: %s", command, device.id, e)
        raise DispatchError(device.id, command, str(e)) from e

    logger.info("Dispatched %s to device %s via %s", command, device.id, api_url)
    return True
