"""Registration and login endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.deps import get_store
from app.core.errors import ValidationError
from app.db.store import RecordStore
from app.schemas.auth import LoginRequest, RegisterRequest
from app.schemas.user import UserResponse
from app.services.auth_service import authenticate_user, register_user

router = APIRouter(tags=["auth"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    store: RecordStore = Depends(get_store),
):
    """Register a user with the default alarm and an optional emergency contact."""
    try:
        return register_user(store, data)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/login", response_model=UserResponse)
def login(
    data: LoginRequest,
    store: RecordStore = Depends(get_store),
):
    """Verify credentials and return the user."""
    user = authenticate_user(store, data.email, data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    return user
