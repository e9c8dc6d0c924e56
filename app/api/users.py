"""User profile endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.deps import get_store
from app.core.errors import NotFoundError, ValidationError
from app.db.store import RecordStore
from app.schemas.user import UserResponse, UserUpdate
from app.services.auth_service import update_profile

router = APIRouter(prefix="/user", tags=["users"])


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    store: RecordStore = Depends(get_store),
):
    user = store.get_user(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    data: UserUpdate,
    store: RecordStore = Depends(get_store),
):
    """Partially update the profile; omitted fields keep their values."""
    try:
        return update_profile(store, user_id, data.changes())
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
