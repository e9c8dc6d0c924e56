"""Emergency contact endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.deps import get_store
from app.core.errors import NotFoundError
from app.db.store import RecordStore
from app.schemas.emergency_contact import (
    EmergencyContactCreate,
    EmergencyContactResponse,
    EmergencyContactUpdate,
)
from app.services.alarm_service import set_emergency_contact

router = APIRouter(prefix="/emergency-contact", tags=["emergency-contact"])


@router.post("", response_model=EmergencyContactResponse, status_code=status.HTTP_201_CREATED)
def create_contact(
    data: EmergencyContactCreate,
    store: RecordStore = Depends(get_store),
):
    """Create the user's emergency contact, replacing any existing one."""
    try:
        return set_emergency_contact(store, data.user_id, data.name, data.whatsapp)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


@router.get("/{user_id}", response_model=EmergencyContactResponse)
def get_contact(
    user_id: int,
    store: RecordStore = Depends(get_store),
):
    contact = store.get_emergency_contact_by_user_id(user_id)
    if not contact:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Emergency contact not found")
    return contact


@router.put("/{contact_id}", response_model=EmergencyContactResponse)
def update_contact(
    contact_id: int,
    data: EmergencyContactUpdate,
    store: RecordStore = Depends(get_store),
):
    contact = store.update_emergency_contact(contact_id, data.changes())
    if not contact:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Emergency contact not found")
    return contact
