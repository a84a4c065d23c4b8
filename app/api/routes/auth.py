"""
Account creation and sign-in.
Accounts start on the trial tier with a fresh token allowance, whether they
register with a password or arrive through their first OAuth sign-in.
"""
import logging

from fastapi import APIRouter, Depends, status

from app.core.errors import Conflict, Forbidden, NotFound, Unauthenticated
from app.dependencies.auth import get_current_user_id, verify_identity_token
from app.dependencies.services import get_account_repository
from app.schemas.auth import TokenResponse, UserCreate, UserLogin, UserResponse, UserSyncRequest
from app.services.repository import AccountRepository
from app.utils.auth import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


def _token_for(user_id: str) -> TokenResponse:
    return TokenResponse(access_token=create_access_token({"sub": user_id}), user_id=user_id)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserCreate,
    accounts: AccountRepository = Depends(get_account_repository),
):
    """Register with email and password; returns an access token."""
    if accounts.find_account_by_email(user_data.email):
        raise Conflict("This email is already registered. Please log in instead.")

    user = accounts.create_account(
        email=user_data.email,
        hashed_password=hash_password(user_data.password),
        name=user_data.name,
    )
    return _token_for(user.id)


@router.post("/login", response_model=TokenResponse)
def login(
    credentials: UserLogin,
    accounts: AccountRepository = Depends(get_account_repository),
):
    user = accounts.find_account_by_email(credentials.email)
    if not user or not verify_password(credentials.password, user.hashed_password):
        raise Unauthenticated("Invalid email or password")
    return _token_for(user.id)


@router.post("/sync-user", response_model=TokenResponse)
def sync_user(
    user_data: UserSyncRequest,
    payload: dict = Depends(verify_identity_token),
    accounts: AccountRepository = Depends(get_account_repository),
):
    """
    Called after an OAuth sign-in with the identity provider's token.
    Creates the trial account on first login, otherwise returns the existing one.
    """
    token_email = payload.get("email") or ""
    if token_email.lower() != user_data.email.lower():
        raise Forbidden("Token user does not match sync request")

    user = accounts.find_account_by_email(token_email)
    if not user:
        user = accounts.create_account(
            email=token_email,
            name=(user_data.name or "").strip() or None,
            image=user_data.image,
        )
        logger.info("Created account %s on first OAuth sign-in", user.id)
    return _token_for(user.id)


@router.get("/me", response_model=UserResponse)
def get_me(
    user_id: str = Depends(get_current_user_id),
    accounts: AccountRepository = Depends(get_account_repository),
):
    user = accounts.get_account(user_id)
    if not user:
        raise NotFound("User not found")
    return user
