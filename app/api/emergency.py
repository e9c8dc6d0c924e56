"""Emergency trigger endpoint."""

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.deps import get_dispatcher
from app.core.errors import NotFoundError
from app.schemas.emergency import SendEmergencyRequest, SendEmergencyResponse
from app.services.escalation_service import EmergencyDispatcher

router = APIRouter(tags=["emergency"])


@router.post("/send-emergency", response_model=SendEmergencyResponse)
def send_emergency(
    data: SendEmergencyRequest,
    dispatcher: EmergencyDispatcher = Depends(get_dispatcher),
):
    """Send the emergency message to the user's contact.

    Delivery failures are reported with success=false, not as HTTP errors.
    """
    try:
        result = dispatcher.dispatch(data.user_id, occurrence=data.occurrence)
    except NotFoundError as e:
        detail = "User not found" if e.entity == "User" else "Emergency contact not found"
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    return SendEmergencyResponse(success=result.success, message=result.detail, duplicate=result.duplicate)
