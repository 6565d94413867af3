"""REST endpoints of the grid plugin.

The handlers only validate requests and shape responses; all behaviour lives in
`GridEngine`. Domain errors propagate to the handlers in `errors.py`.
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query, Request

from grid_shed.api.schemas import StartEventRequest, StepRequest
from grid_shed.devices.helper import DeviceHelper
from grid_shed.devices.models import Device, DeviceGroup, DeviceUpsert
from grid_shed.events.engine import GridEngine
from grid_shed.events.models import GridSettings, Playbook, PlaybookUpsert

router = APIRouter(prefix="/grid", tags=["grid"])


def engine_dependency(request: Request) -> GridEngine:
    return request.app.state.engine


# Settings


@router.get("/settings", response_model=GridSettings)
def get_settings(engine: GridEngine = Depends(engine_dependency)) -> GridSettings:
    return engine.settings


@router.post("/settings")
def update_settings(
    settings: GridSettings, engine: GridEngine = Depends(engine_dependency)
) -> Dict[str, Any]:
    return {"ok": True, "settings": engine.update_settings(settings)}


# Devices


@router.get("/devices", response_model=List[Device])
def list_devices(
    group: Optional[DeviceGroup] = Query(None),
    engine: GridEngine = Depends(engine_dependency),
) -> List[Device]:
    return engine.list_devices(group.value if group else None)


@router.post("/devices")
def upsert_devices(
    body: Union[List[DeviceUpsert], DeviceUpsert] = Body(...),
    engine: GridEngine = Depends(engine_dependency),
) -> Dict[str, Any]:
    patches = body if isinstance(body, list) else [body]
    return {"ok": True, "items": engine.upsert_devices(patches)}


@router.get("/devices/shed-plan")
def shed_plan(
    target_kw: float = Query(..., ge=0),
    engine: GridEngine = Depends(engine_dependency),
) -> Dict[str, Any]:
    """Suggests which running devices to shed, lowest priority first, to reach a target."""
    plan = engine.shed_plan(target_kw)
    return {
        "target_kw": target_kw,
        "total_kw": round(DeviceHelper.total_power(plan), 2),
        "items": plan,
    }


@router.post("/device/{device_id}/shed")
def shed_device(device_id: str, engine: GridEngine = Depends(engine_dependency)) -> Dict[str, Any]:
    engine.shed_device(device_id)
    return {"ok": True}


@router.post("/device/{device_id}/restore")
def restore_device(
    device_id: str, engine: GridEngine = Depends(engine_dependency)
) -> Dict[str, Any]:
    engine.restore_device(device_id)
    return {"ok": True}


@router.post("/device/{device_id}/nudge")
def nudge_device(device_id: str, engine: GridEngine = Depends(engine_dependency)) -> Dict[str, Any]:
    return {"ok": True, "delta": engine.nudge_device(device_id)}


# Playbooks


@router.get("/playbooks", response_model=List[Playbook])
def list_playbooks(engine: GridEngine = Depends(engine_dependency)) -> List[Playbook]:
    return engine.list_playbooks()


@router.post("/playbooks")
def upsert_playbooks(
    body: Union[List[PlaybookUpsert], PlaybookUpsert] = Body(...),
    engine: GridEngine = Depends(engine_dependency),
) -> Dict[str, Any]:
    patches = body if isinstance(body, list) else [body]
    return {"ok": True, "items": engine.upsert_playbooks(patches)}


# Events


@router.post("/events/start")
def start_event(
    body: Optional[StartEventRequest] = Body(None),
    engine: GridEngine = Depends(engine_dependency),
) -> Dict[str, Any]:
    request = body or StartEventRequest()
    return {"event": engine.start_event(request.target_kw, request.playbook_id)}


@router.post("/events/{event_id}/step")
def step_event(
    event_id: str,
    body: StepRequest,
    engine: GridEngine = Depends(engine_dependency),
) -> Dict[str, Any]:
    event = engine.step_event(event_id, body.device_id, body.action, body.note, body.by)
    return {"event": event}


@router.post("/events/{event_id}/stop")
def stop_event(event_id: str, engine: GridEngine = Depends(engine_dependency)) -> Dict[str, Any]:
    return {"event": engine.stop_event(event_id)}


@router.get("/events")
def list_events(engine: GridEngine = Depends(engine_dependency)) -> Dict[str, Any]:
    return {"items": engine.list_events()}


@router.get("/events/{event_id}")
def get_event(event_id: str, engine: GridEngine = Depends(engine_dependency)) -> Dict[str, Any]:
    return {"event": engine.get_event(event_id)}
