"""
API routes.

Defines the REST endpoints for signup, verification, login and password
management, plus the mail provider's delivery-event webhook.

Expected negatives (wrong code, unknown user, bad password) are answered
with 200 and ``success: false``; callers branch on the payload.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse

from onboarding.api.dependencies import (
    get_account_service,
    get_bounce_handler,
    get_credential_service,
    get_verification_service,
)
from onboarding.api.models import (
    ActionResponse,
    DeliveryEventsAck,
    ErrorResponse,
    FinalizeRequest,
    FinalizeResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    ResendRequest,
    ResendResponse,
    ResetPasswordRequest,
    SendVerificationRequest,
    SendVerificationResponse,
    SignupRequest,
    SignupResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from onboarding.config.settings import Settings, get_settings
from onboarding.domain.accounts import AccountCommitService
from onboarding.domain.bounces import BounceHandler
from onboarding.domain.credentials import CredentialService, ResetResult
from onboarding.domain.exceptions import DownstreamFailure
from onboarding.domain.models import IssuedCode
from onboarding.domain.ports import LoginResult
from onboarding.domain.verification import VerificationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["onboarding"])

_SERVER_ERROR = {500: {"model": ErrorResponse, "description": "Datastore or mail provider failure"}}

_LOGIN_ERRORS = {
    LoginResult.NOT_FOUND: "User not found.",
    LoginResult.INCORRECT_PASSWORD: "Incorrect password.",
    LoginResult.UNVERIFIED: "Email not verified.",
    LoginResult.PASSWORD_ALREADY_SET: "Password already set.",
}

_RESET_ERRORS = {
    ResetResult.LOCKED: "Too many attempts. Please request a new code.",
}


@router.post(
    "/create-client",
    response_model=SignupResponse,
    responses=_SERVER_ERROR,
    summary="Stage a client signup",
    description="Stage client, project and team details and email a verification code. "
    "Nothing is persisted as an account until the code is confirmed.",
)
async def create_client(
    request_data: SignupRequest,
    service: AccountCommitService = Depends(get_account_service),
) -> SignupResponse:
    issued = await service.stage_signup(request_data.to_staged(), request_data.client.password)
    return SignupResponse(
        success=True,
        message="Verification email sent.",
        session_id=issued.session_id,
        expires_in_seconds=issued.expires_in_seconds,
    )


@router.post(
    "/finalize-account",
    response_model=FinalizeResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, **_SERVER_ERROR},
    summary="Commit a client-held signup after verification",
)
async def finalize_account(
    request_data: FinalizeRequest,
    service: AccountCommitService = Depends(get_account_service),
) -> FinalizeResponse:
    account_id = await service.finalize(
        request_data.email,
        request_data.session_id,
        request_data.to_staged(),
        request_data.client.password,
    )
    if account_id is None:
        return FinalizeResponse(success=False, error="Email not verified.")
    return FinalizeResponse(
        success=True, message="Account finalized successfully.", account_id=account_id
    )


@router.post(
    "/verify-code",
    response_model=VerifyCodeResponse,
    responses=_SERVER_ERROR,
    summary="Confirm a verification code",
    description="Returns verified=true for a correct code, including a repeated "
    "submission of a code that was already accepted.",
)
async def verify_code(
    request_data: VerifyCodeRequest,
    service: VerificationService = Depends(get_verification_service),
) -> VerifyCodeResponse:
    result = await service.verify_code(
        request_data.email, request_data.session_id, request_data.code
    )
    return VerifyCodeResponse(verified=result.ok)


@router.get(
    "/verify",
    response_class=RedirectResponse,
    status_code=status.HTTP_303_SEE_OTHER,
    summary="Confirm a verification code from an email link",
)
async def verify_link(
    email: str = Query(...),
    session_id: str = Query(...),
    code: str = Query(...),
    service: VerificationService = Depends(get_verification_service),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    try:
        verified = (await service.verify_code(email, session_id, code)).ok
    except DownstreamFailure:
        logger.error("Link verification failed", exc_info=True)
        verified = False

    page = "verify-success.html" if verified else "verify-failed.html"
    return RedirectResponse(
        f"{settings.frontend_url}/{page}", status_code=status.HTTP_303_SEE_OTHER
    )


@router.post(
    "/resend-verification",
    response_model=ResendResponse,
    response_model_exclude_none=True,
    responses=_SERVER_ERROR,
    summary="Resend a verification code",
    description="Reuses the current session. Once the resend limit is reached the "
    "staged signup is discarded and the caller is redirected to start over.",
)
async def resend_verification(
    request_data: ResendRequest,
    service: VerificationService = Depends(get_verification_service),
    settings: Settings = Depends(get_settings),
) -> ResendResponse:
    outcome = await service.resend(request_data.email)
    if outcome.exhausted or outcome.issued is None:
        return ResendResponse(success=False, redirect=f"{settings.frontend_url}{settings.restart_path}")
    return ResendResponse(
        success=True,
        session_id=outcome.issued.session_id,
        expires_in_seconds=outcome.issued.expires_in_seconds,
    )


@router.post(
    "/verify-login",
    response_model=LoginResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse, "description": "Invalid role"}, **_SERVER_ERROR},
    summary="Check login credentials",
)
async def verify_login(
    request_data: LoginRequest,
    service: CredentialService = Depends(get_credential_service),
) -> LoginResponse:
    result = await service.login(request_data.role, request_data.email, request_data.password)

    if result is LoginResult.SUCCESS:
        return LoginResponse(success=True)
    if result is LoginResult.FIRST_LOGIN:
        return LoginResponse(success=False, first_login=True)
    return LoginResponse(success=False, error=_LOGIN_ERRORS[result])


@router.post(
    "/send-verification",
    response_model=SendVerificationResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse, "description": "Invalid role"}, **_SERVER_ERROR},
    summary="Start first-login verification",
    description="Emails a code; the submitted password is stored once the code is confirmed "
    "through /verify-code.",
)
async def send_verification(
    request_data: SendVerificationRequest,
    service: CredentialService = Depends(get_credential_service),
) -> SendVerificationResponse:
    result = await service.send_first_login_code(
        request_data.role, request_data.email, request_data.password
    )
    if not isinstance(result, IssuedCode):
        return SendVerificationResponse(success=False, error=_LOGIN_ERRORS[result])
    return SendVerificationResponse(
        success=True, message="Verification email sent.", session_id=result.session_id
    )


@router.post(
    "/forgot-password",
    response_model=ActionResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse, "description": "Invalid role"}, **_SERVER_ERROR},
    summary="Request a password reset code",
)
async def forgot_password(
    request_data: ForgotPasswordRequest,
    service: CredentialService = Depends(get_credential_service),
) -> ActionResponse:
    await service.request_password_reset(request_data.role, request_data.email)
    return ActionResponse(
        success=True, message="If the account exists, a reset code has been sent."
    )


@router.post(
    "/reset-password",
    response_model=ActionResponse,
    response_model_exclude_none=True,
    responses=_SERVER_ERROR,
    summary="Reset a password with an emailed code",
)
async def reset_password(
    request_data: ResetPasswordRequest,
    service: CredentialService = Depends(get_credential_service),
) -> ActionResponse:
    result = await service.reset_password(
        request_data.email, request_data.code, request_data.password
    )
    if result is ResetResult.SUCCESS:
        return ActionResponse(success=True, message="Password reset successfully.")
    return ActionResponse(
        success=False, error=_RESET_ERRORS.get(result, "Invalid or expired code.")
    )


@router.post(
    "/sendgrid-events",
    response_model=DeliveryEventsAck,
    summary="Mail provider delivery-event webhook",
    description="Hard failures (bounce, dropped, blocked) de-verify the recipient. "
    "Always acknowledged with 200.",
)
async def sendgrid_events(
    request: Request,
    handler: BounceHandler = Depends(get_bounce_handler),
) -> DeliveryEventsAck:
    events: Any
    try:
        events = await request.json()
    except ValueError:
        logger.warning("Delivery webhook body is not JSON")
        events = None

    report = await handler.handle(events if isinstance(events, list) else None)
    return DeliveryEventsAck(
        received=report.received, deverified=report.deverified, skipped=report.skipped
    )
