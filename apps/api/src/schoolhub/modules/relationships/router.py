"""
Parent Verification Router

API endpoints for the parent-student relationship workflow.

Endpoints:
- POST /parent-verification/request - Parent requests a relationship (auth)
- POST /parent-verification/register-and-verify - New parent registers and verifies
- GET /parent-verification/relationship/{token} - Relationship + student for a token
- PUT /parent-verification/verify/{token} - Verify a relationship
- PUT /parent-verification/reject/{token} - Reject a relationship
- POST /parent-verification/student-initiated - Student names a parent
- GET /parent-verification/children - Verified children (auth)
- GET /parent-verification/pending - Pending requests (auth)
- POST /parent-verification/resend-verification/{relationship_id} - Resend email (auth)

Token endpoints are public: the emailed token is the credential.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.core.auth import CurrentUser, get_current_user
from schoolhub.core.database import get_db
from schoolhub.core.rate_limit import enforce_rate_limit
from schoolhub.modules.relationships import service
from schoolhub.modules.relationships.helpers import relationship_response
from schoolhub.modules.relationships.schemas import (
    ChildResponse,
    ParentAccountResponse,
    PendingRelationshipResponse,
    RegisterAndVerifyRequest,
    RegisterAndVerifyResponse,
    RelationshipRequestBody,
    RelationshipRequestByEmail,
    RelationshipRequestById,
    RelationshipRequestResult,
    RelationshipResponse,
    RelationshipWithStudent,
    ResendVerificationResponse,
    StudentInitiatedRequest,
    StudentInitiatedResponse,
)
from schoolhub.modules.relationships.service import RelationshipServiceError
from schoolhub.modules.shared import ApiResponse

logger = logging.getLogger(__name__)

router = APIRouter()

RESEND_LIMIT = 3
RESEND_WINDOW_SECONDS = 3600


def _service_error(e: RelationshipServiceError) -> HTTPException:
    return HTTPException(
        status_code=e.status_code,
        detail={"error": e.error_code, "message": e.message},
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


async def _request_by_id(
    db: AsyncSession, body: RelationshipRequestById, user: CurrentUser
) -> RelationshipRequestResult:
    relationship = await service.create_relationship_request(
        db,
        parent_id=user.id,
        student_id=body.student_id,
        relationship_type=body.relationship_type,
        description=body.description,
    )
    return RelationshipRequestResult(
        relationship_id=str(relationship.id), status=relationship.status
    )


async def _request_by_email(
    db: AsyncSession, body: RelationshipRequestByEmail
) -> RelationshipRequestResult:
    relationship = await service.create_relationship_request_by_email(
        db,
        parent_email=body.parent_email,
        student_email=body.student_email,
        relationship_type=body.relation_type,
    )
    return RelationshipRequestResult(
        relationship_id=str(relationship.id), status=relationship.status
    )


@router.post(
    "/request",
    response_model=ApiResponse[RelationshipRequestResult],
    status_code=status.HTTP_201_CREATED,
    summary="Request Parent-Student Relationship",
)
async def create_relationship_request(
    body: Annotated[RelationshipRequestBody, Body()],
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[RelationshipRequestResult]:
    """
    Create a relationship request and email the parent a verification link.

    Accepts either ``{studentId, relationshipType, description?}`` from the
    authenticated parent, or the sign-up form shape
    ``{parentEmail, studentEmail, relationType?}``.

    Raises:
        HTTPException 400: Not a student / not a parent
        HTTPException 404: Student or parent not found
        HTTPException 409: An open request already exists
    """
    try:
        if isinstance(body, RelationshipRequestByEmail):
            result = await _request_by_email(db, body)
            message = "Relationship request created and verification email sent"
        else:
            result = await _request_by_id(db, body, user)
            message = "Relationship request created"
        return ApiResponse.ok(result, message)

    except RelationshipServiceError as e:
        logger.warning(f"Relationship request refused: {e.message}")
        raise _service_error(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error creating relationship request: {e}")
        raise _internal_error() from e


@router.post(
    "/register-and-verify",
    response_model=ApiResponse[RegisterAndVerifyResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Register Parent Account and Verify Relationship",
)
async def register_and_verify(
    body: RegisterAndVerifyRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[RegisterAndVerifyResponse]:
    """
    Create a parent account and verify the relationship behind the token.

    Raises:
        HTTPException 400: Email already registered, or token expired
        HTTPException 404: No relationship for the token
        HTTPException 409: Relationship already verified, rejected, or owned by a parent
    """
    try:
        parent, relationship = await service.register_parent_and_verify(
            db,
            token=body.token,
            email=body.email,
            password=body.password,
            first_name=body.first_name,
            last_name=body.last_name,
            phone_number=body.phone_number,
        )
        data = RegisterAndVerifyResponse(
            user=ParentAccountResponse(
                id=str(parent.id),
                email=parent.email,
                first_name=parent.first_name,
                last_name=parent.last_name,
                role=parent.role.value,
            ),
            relationship=relationship_response(relationship),
        )
        return ApiResponse.ok(data, "Parent account created and relationship verified")

    except RelationshipServiceError as e:
        logger.warning(f"Register-and-verify refused: {e.message}")
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error in register-and-verify: {e}")
        raise _internal_error() from e


@router.get(
    "/relationship/{token}",
    response_model=ApiResponse[RelationshipWithStudent],
    summary="Get Relationship by Token",
)
async def get_relationship_by_token(
    token: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[RelationshipWithStudent]:
    """Relationship and student summary for the verification landing page."""
    try:
        result = await service.get_relationship_by_token(db, token)
    except Exception as e:
        logger.exception(f"Unexpected error loading relationship by token: {e}")
        raise _internal_error() from e

    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "RELATIONSHIP_NOT_FOUND",
                "message": "Relationship not found or token is invalid",
            },
        )
    return ApiResponse.ok(result)


@router.put(
    "/verify/{token}",
    response_model=ApiResponse[RelationshipResponse],
    summary="Verify Relationship",
)
async def verify_relationship(
    token: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[RelationshipResponse]:
    """
    Verify the relationship behind the token.

    Raises:
        HTTPException 400: Token invalid or expired
        HTTPException 409: Already verified or rejected
    """
    try:
        relationship = await service.verify_relationship(db, token)
        return ApiResponse.ok(
            relationship_response(relationship), "Relationship verified successfully"
        )
    except RelationshipServiceError as e:
        logger.warning(f"Verification refused: {e.message}")
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error verifying relationship: {e}")
        raise _internal_error() from e


@router.put(
    "/reject/{token}",
    response_model=ApiResponse[RelationshipResponse],
    summary="Reject Relationship",
)
async def reject_relationship(
    token: str,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[RelationshipResponse]:
    """
    Reject the relationship behind the token.

    Raises:
        HTTPException 400: Token invalid or expired
        HTTPException 409: Already verified or rejected
    """
    try:
        relationship = await service.reject_relationship(db, token)
        return ApiResponse.ok(
            relationship_response(relationship), "Relationship rejected successfully"
        )
    except RelationshipServiceError as e:
        logger.warning(f"Rejection refused: {e.message}")
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error rejecting relationship: {e}")
        raise _internal_error() from e


@router.post(
    "/student-initiated",
    response_model=ApiResponse[StudentInitiatedResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Student Names a Parent",
)
async def create_student_initiated_relationship(
    body: StudentInitiatedRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[StudentInitiatedResponse]:
    """
    Send the named parent a verification (or registration) link.

    Raises:
        HTTPException 400: Not a student, or email owned by a non-parent account
        HTTPException 404: Student not found
        HTTPException 409: An open request already exists
    """
    try:
        relationship = await service.create_student_initiated_relationship(
            db,
            student_id=body.student_id,
            parent_email=body.parent_email,
            parent_first_name=body.parent_first_name,
            parent_last_name=body.parent_last_name,
        )
        data = StudentInitiatedResponse(
            relationship_id=str(relationship.id),
            parent_exists=relationship.parent_id is not None,
        )
        return ApiResponse.ok(data, "Parent verification request sent")

    except RelationshipServiceError as e:
        logger.warning(f"Student-initiated request refused: {e.message}")
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error creating student-initiated request: {e}")
        raise _internal_error() from e


@router.get(
    "/children",
    response_model=ApiResponse[list[ChildResponse]],
    summary="List Verified Children",
)
async def get_children(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[list[ChildResponse]]:
    """Students with a verified relationship to the authenticated parent."""
    try:
        return ApiResponse.ok(await service.get_children(db, user.id))
    except Exception as e:
        logger.exception(f"Unexpected error listing children: {e}")
        raise _internal_error() from e


@router.get(
    "/pending",
    response_model=ApiResponse[list[PendingRelationshipResponse]],
    summary="List Pending Relationships",
)
async def get_pending_relationships(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[list[PendingRelationshipResponse]]:
    """Requests awaiting the authenticated parent, by account and by email."""
    try:
        return ApiResponse.ok(await service.get_pending_relationships(db, user.id))
    except RelationshipServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error listing pending relationships: {e}")
        raise _internal_error() from e


@router.post(
    "/resend-verification/{relationship_id}",
    response_model=ApiResponse[ResendVerificationResponse],
    summary="Resend Verification Email",
)
async def resend_verification_email(
    relationship_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ApiResponse[ResendVerificationResponse]:
    """
    Issue a fresh token and resend the verification email.

    Limited to 3 resends per relationship per hour.

    Raises:
        HTTPException 404: Unknown relationship, or not the caller's
        HTTPException 409: Already verified or rejected
        HTTPException 429: Rate limit exceeded
    """
    await enforce_rate_limit(
        f"resend_verification:{relationship_id}", RESEND_LIMIT, RESEND_WINDOW_SECONDS
    )

    try:
        relationship = await service.resend_verification_email(
            db, relationship_id, requester_id=user.id
        )
        data = ResendVerificationResponse(
            relationship_id=str(relationship.id),
            token_expiry=relationship.token_expiry,
        )
        return ApiResponse.ok(data, "Verification email resent successfully")

    except RelationshipServiceError as e:
        logger.warning(f"Resend refused for {relationship_id}: {e.message}")
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error resending verification: {e}")
        raise _internal_error() from e
