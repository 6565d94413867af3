"""This module handles grid signals received over Redis.

A utility or VPP aggregator publishes on ``grid_function/peak_shed`` to drive
the hotel's demand response without going through the REST API. A message with
``params`` starts a grid event; a message without them stops the newest open
event.
"""

from typing import Any, Dict

from faststream.redis import RedisRouter

from grid_shed.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

topic_prefix = "grid_function/"
function_name = "peak_shed"


grid_router = RedisRouter(prefix=topic_prefix)


@grid_router.subscriber(function_name)
async def handle_peak_shed_request(peak_shed_request: Dict[str, Any]) -> bool:
    """Handles incoming peak-shed signals.

    Args:
        peak_shed_request: A dictionary with an optional 'params' key holding
                           'target_kw' and 'playbook_id'.

    Returns:
        True if an event was started, False if the signal was a stop request.
    """
    from grid_shed.app import get_engine

    engine = get_engine()
    params = peak_shed_request.get("params")
    if params is None:
        logger.info("Received peak-shed signal with NO parameters, stopping the open event")
        event = engine.latest_open_event()
        if event is None:
            logger.info("No open grid event to stop")
        else:
            engine.stop_event(event.id)
        return False

    logger.info("Received peak-shed signal with parameters: %s", params)

    try:
        target_kw = float(params.get("target_kw") or 0)
    except (TypeError, ValueError):
        logger.warning("Invalid target_kw %r in signal, using 0", params.get("target_kw"))
        target_kw = 0.0

    event = engine.start_event(target_kw, params.get("playbook_id"))
    logger.info("Grid event %s started from signal", event.id)
    return True
