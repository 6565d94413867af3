"""This module records finalized grid events to a time-series database.

When an event is stopped, its summary (target, estimated kW and kWh
reduction) and its action log are written to InfluxDB, so that the reductions
can be charted next to metered consumption. Recording is optional: without
`INFLUXDB_URL` nothing is written. A failed write is logged and never
propagated, because the event itself stays valid in memory.
"""

import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from influxdb_client import InfluxDBClient
from influxdb_client.client.write_api import SYNCHRONOUS

from grid_shed.events.models import GridEvent
from grid_shed.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

MAPPING_PATH = Path(__file__).parent.parent / "database" / "influx_mapping.yaml"


class EventRecorder:
    """Writes stopped grid events to InfluxDB."""

    def __init__(self, mapping_path: Path = MAPPING_PATH) -> None:
        with open(mapping_path, "r") as file:
            self._mapping: Dict[str, Dict[str, str]] = yaml.safe_load(file)

    def record(self, event: GridEvent) -> None:
        """Saves the event summary and its actions, if a database is configured.

        Args:
            event: A stopped grid event.
        """
        url = os.getenv("INFLUXDB_URL")
        if not url:
            logger.debug("INFLUXDB_URL not set, event %s not recorded", event.id)
            return

        org = os.getenv("INFLUXDB_ORG")
        token = os.getenv("INFLUXDB_TOKEN")

        try:
            with InfluxDBClient(url=url, token=token, org=org, timeout=30000) as client:
                write_api = client.write_api(write_options=SYNCHRONOUS)

                summary = self._mapping["grid_event"]
                write_api.write(
                    bucket=summary["bucket"],
                    record=self._convert_event_to_list(event, summary["measurement"]),
                )

                actions = self._mapping["grid_action"]
                data = self._convert_actions_to_list(event, actions["measurement"])
                if data:
                    write_api.write(bucket=actions["bucket"], record=data)
            logger.info("Grid event %s successfully saved to InfluxDB.", event.id)
        except Exception as e:
            logger.error("Failed to save grid event %s to InfluxDB: %s", event.id, e)

    def _convert_event_to_list(self, event: GridEvent, measurement: str) -> List[Dict[str, Any]]:
        return [
            {
                "measurement": measurement,
                "tags": {"event_id": event.id, "mode": event.mode},
                "time": event.end_at or event.start_at,
                "fields": {
                    "target_kw": float(event.target_kw),
                    "reduced_kw": float(event.reduced_kw or 0.0),
                    "reduced_kwh": float(event.reduced_kwh or 0.0),
                    "duration_s": (
                        (event.end_at - event.start_at).total_seconds() if event.end_at else 0.0
                    ),
                },
            }
        ]

    def _convert_actions_to_list(self, event: GridEvent, measurement: str) -> List[Dict[str, Any]]:
        return [
            {
                "measurement": measurement,
                "tags": {
                    "event_id": event.id,
                    "device_id": action.device_id,
                    "by": action.by,
                },
                "time": action.ts,
                "fields": {"action": action.action, "note": action.note or ""},
            }
            for action in event.actions
        ]
