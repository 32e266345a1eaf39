"""Authentication router."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.core.database import get_db
from schoolhub.modules.auth import service
from schoolhub.modules.auth.schemas import (
    LoginRequest,
    LoginResponse,
    ParentLinkSummary,
    RegisterRequest,
    RegisterResponse,
    UserResponse,
)
from schoolhub.modules.auth.service import AuthServiceError
from schoolhub.modules.shared import ApiResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _auth_error(e: AuthServiceError) -> HTTPException:
    return HTTPException(
        status_code=e.status_code,
        detail={"error": e.error_code, "message": e.message},
    )


@router.post(
    "/register",
    response_model=ApiResponse[RegisterResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[RegisterResponse]:
    """
    Register a user account.

    Raises:
        HTTPException 409: Email already registered
    """
    try:
        result = await service.register_user(db, data)
    except AuthServiceError as e:
        logger.warning(f"Registration refused: {e.error_code}")
        raise _auth_error(e) from e

    parent_link = None
    if result.parent_link is not None:
        parent_link = ParentLinkSummary(
            relationship_id=result.parent_link.relationship_id,
            parent_created=result.parent_link.parent_created,
        )

    return ApiResponse.ok(
        RegisterResponse(
            user=UserResponse.model_validate(result.user),
            access_token=result.access_token,
            parent_link=parent_link,
        ),
        "Registration successful",
    )


@router.post("/login", response_model=ApiResponse[LoginResponse])
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[LoginResponse]:
    """
    Authenticate user and return JWT tokens.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account locked or suspended
    """
    try:
        result = await service.authenticate(db, credentials.email, credentials.password)
    except AuthServiceError as e:
        raise _auth_error(e) from e

    return ApiResponse.ok(
        LoginResponse(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            user=UserResponse.model_validate(result.user),
        ),
        "Login successful",
    )
