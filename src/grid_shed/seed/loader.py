import os
from pathlib import Path
from typing import Optional, Tuple

import yaml

from grid_shed.devices.models import Device
from grid_shed.devices.registry import DeviceRegistry
from grid_shed.events.models import GridSettings, Playbook
from grid_shed.events.playbooks import PlaybookStore
from grid_shed.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

DEFAULT_SEED_PATH = Path(__file__).parent / "grid_seed.yaml"


def load_seed(
    seed_path: Optional[Path] = None,
) -> Tuple[GridSettings, DeviceRegistry, PlaybookStore]:
    """Builds the initial settings, device registry and playbook store.

    The file is chosen in this order: the `seed_path` argument, the
    `GRID_SEED_FILE` environment variable, then the bundled demo seed.

    Args:
        seed_path: Optional path to a YAML seed file.

    Returns:
        A tuple of (settings, devices, playbooks).

    Raises:
        pydantic.ValidationError: If an entry of the seed file is invalid.
    """
    path = Path(seed_path or os.getenv("GRID_SEED_FILE") or DEFAULT_SEED_PATH)
    with open(path, "r") as file:
        seed = yaml.safe_load(file) or {}

    settings = GridSettings.model_validate(seed.get("settings") or {})
    devices = DeviceRegistry(Device.model_validate(d) for d in seed.get("devices") or [])
    playbooks = PlaybookStore(Playbook.model_validate(p) for p in seed.get("playbooks") or [])

    logger.info(
        "Seed loaded from %s: %d devices, %d playbooks, mode %s",
        path,
        len(devices.all()),
        len(playbooks.all()),
        settings.mode,
    )
    return settings, devices, playbooks
