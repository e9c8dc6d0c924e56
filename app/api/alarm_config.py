"""Alarm config endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from app.core.deps import get_store
from app.core.errors import MissingEmergencyContact, NotFoundError, ValidationError
from app.db.store import RecordStore
from app.schemas.alarm_config import (
    AdvanceRequest,
    AlarmConfigCreate,
    AlarmConfigResponse,
    AlarmConfigUpdate,
)
from app.services.alarm_service import (
    activate_alarm,
    advance_alarm,
    create_alarm_config,
    update_alarm_config,
)

router = APIRouter(prefix="/alarm-config", tags=["alarm-config"])


@router.post("", response_model=AlarmConfigResponse, status_code=status.HTTP_201_CREATED)
def create_config(
    data: AlarmConfigCreate,
    store: RecordStore = Depends(get_store),
):
    """Create the user's alarm, replacing any existing one."""
    try:
        return create_alarm_config(store, data)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{user_id}", response_model=AlarmConfigResponse)
def get_config(
    user_id: int,
    store: RecordStore = Depends(get_store),
):
    config = store.get_alarm_config_by_user_id(user_id)
    if not config:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alarm config not found")
    return config


@router.put("/{config_id}", response_model=AlarmConfigResponse)
def update_config(
    config_id: int,
    data: AlarmConfigUpdate,
    store: RecordStore = Depends(get_store),
):
    """Partially update an alarm; omitted fields keep their values."""
    try:
        return update_alarm_config(store, config_id, data.changes())
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alarm config not found")


@router.post("/{config_id}/advance", response_model=AlarmConfigResponse)
def advance_config(
    config_id: int,
    data: AdvanceRequest,
    store: RecordStore = Depends(get_store),
):
    """Move the alarm past the occurrence at expectedNextAlarm.

    409 with the current config when another writer already advanced it.
    """
    try:
        config, advanced = advance_alarm(store, config_id, data.expected_next_alarm)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alarm config not found")
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not advanced:
        body = AlarmConfigResponse.model_validate(config).model_dump(mode="json", by_alias=True)
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body)
    return config


@router.post("/{config_id}/activate", response_model=AlarmConfigResponse)
def activate_config(
    config_id: int,
    store: RecordStore = Depends(get_store),
):
    """Arm the alarm. Refused with 409 while the user has no emergency contact."""
    try:
        return activate_alarm(store, config_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alarm config not found")
    except MissingEmergencyContact as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
