"""Auth API routes for login, token redemption and session refresh."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from idplane.core.auth import AuthService, LoginResult
from idplane.entrypoints.api.deps import get_auth_service
from idplane.entrypoints.api.middleware.jwt_auth import AuthContext
from idplane.entrypoints.api.routes.users import UserResponse

router = APIRouter(prefix="/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 8


# Request/Response models
class LoginRequest(BaseModel):
    """Login request body."""

    email: EmailStr
    password: str
    tenant_id: UUID


class SetInitialPasswordRequest(BaseModel):
    """Initial admin password setup body."""

    token: str
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class RegisterInvitedRequest(BaseModel):
    """Invited user registration body."""

    token: str
    full_name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class RefreshRequest(BaseModel):
    """Token refresh request body."""

    refresh_token: str


class ValidateRequest(BaseModel):
    """Token validation request body."""

    token: str


class ForgotPasswordRequest(BaseModel):
    """Password reset request body."""

    email: EmailStr
    tenant_id: UUID


class ResetPasswordRequest(BaseModel):
    """Password reset confirmation body."""

    token: str
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class ConfirmPasswordRequest(BaseModel):
    """Re-authentication body for sensitive operations."""

    password: str


class VerifyEmailRequest(BaseModel):
    """Email verification body."""

    token: str


class TokenResponse(BaseModel):
    """Session credentials."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    user: UserResponse | None = None


class ClaimsResponse(BaseModel):
    """Claims of a valid session credential."""

    valid: bool = True
    user_id: str
    tenant_id: str
    email: str
    token_type: str
    expires_at: int


class MessageResponse(BaseModel):
    """Generic acknowledgement."""

    message: str


def _token_response(result: LoginResult) -> TokenResponse:
    return TokenResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        token_type=result.token_type,
        user=UserResponse.from_user(result.user),
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> TokenResponse:
    """Authenticate user and return tokens."""
    result = await service.login(body.email, body.password, body.tenant_id)
    return _token_response(result)


@router.post("/set-initial-password", response_model=UserResponse)
async def set_initial_password(
    body: SetInitialPasswordRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> UserResponse:
    """Redeem an initial admin setup token and activate the account."""
    user = await service.set_initial_password(body.token, body.password)
    return UserResponse.from_user(user)


@router.post("/register-invited", response_model=TokenResponse)
async def register_invited(
    body: RegisterInvitedRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> TokenResponse:
    """Redeem an invitation and log the new user in."""
    result = await service.register_invited_user(body.token, body.full_name, body.password)
    return _token_response(result)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> TokenResponse:
    """Exchange a refresh token for a new access token."""
    access_token = await service.refresh_token(body.refresh_token)
    return TokenResponse(access_token=access_token)


@router.post("/validate", response_model=ClaimsResponse)
async def validate(
    body: ValidateRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> ClaimsResponse:
    """Validate a session credential and return its claims."""
    claims = service.validate_token(body.token)
    return ClaimsResponse(
        user_id=claims.user_id,
        tenant_id=claims.tenant_id,
        email=claims.email,
        token_type=claims.token_type.value,
        expires_at=claims.exp,
    )


@router.post("/password-reset/request", response_model=MessageResponse)
async def request_password_reset(
    body: ForgotPasswordRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    """Start a password reset.

    Always answers the same way so callers cannot learn which emails exist.
    """
    await service.forgot_password(body.email, body.tenant_id)
    return MessageResponse(
        message="If an account exists for this email, a reset link has been sent."
    )


@router.post("/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(
    body: ResetPasswordRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    """Set a new password with a reset token."""
    await service.reset_password(body.token, body.new_password)
    return MessageResponse(message="Password has been reset.")


@router.post("/logout", response_model=MessageResponse)
async def logout(
    auth: AuthContext,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    """Revoke the caller's outstanding one-time tokens.

    Session credentials are stateless and stay valid until they expire.
    """
    await service.logout(auth.user_uuid)
    return MessageResponse(message="Logged out.")


@router.post("/confirm-password", response_model=MessageResponse)
async def confirm_password(
    body: ConfirmPasswordRequest,
    auth: AuthContext,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    """Re-check the caller's password."""
    await service.confirm_password(auth.user_uuid, body.password)
    return MessageResponse(message="Password confirmed.")


@router.post("/verify-email/request", response_model=MessageResponse)
async def request_email_verification(
    auth: AuthContext,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    """Mail the caller an email verification link."""
    await service.request_email_verification(auth.user_uuid)
    return MessageResponse(message="Verification email sent.")


@router.post("/verify-email", response_model=UserResponse)
async def verify_email(
    body: VerifyEmailRequest,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> UserResponse:
    """Redeem an email verification token."""
    user = await service.verify_email(body.token)
    return UserResponse.from_user(user)
