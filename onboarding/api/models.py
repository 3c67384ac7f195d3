"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Responses are serialized in camelCase (``sessionId``, ``firstLogin``) for the
browser frontend; requests accept either spelling.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from onboarding.domain.models import StagedAccount, StagedClient, StagedMember, StagedProject


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ClientIn(ApiModel):
    company_email: EmailStr
    company_name: str | None = None
    representative_name: str | None = None
    title: str | None = None
    phone_number: str | None = None
    password: str | None = Field(None, min_length=8, description="Client password (min 8 characters)")


class ProjectIn(ApiModel):
    name: str = Field(..., min_length=1)
    location: str | None = None
    contract_reference: str | None = None


class _MemberBase(ApiModel):
    """Members without an email are skipped at commit time."""

    name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class MemberIn(_MemberBase):
    """Contractor or consultant."""

    company: str | None = None


class TeamMemberIn(_MemberBase):
    position: str | None = None
    task: str | None = None


class SignupRequest(ApiModel):
    """Request model for starting a client signup."""

    client: ClientIn
    project: ProjectIn | None = None
    contractor: MemberIn | None = None
    consultant: MemberIn | None = None
    team_members: list[TeamMemberIn] = Field(default_factory=list)

    def to_staged(self) -> StagedAccount:
        client = self.client
        return StagedAccount(
            client=StagedClient(
                company_email=client.company_email,
                company_name=client.company_name,
                representative_name=client.representative_name,
                title=client.title,
                phone_number=client.phone_number,
            ),
            project=StagedProject(**self.project.model_dump()) if self.project else None,
            contractor=StagedMember(**self.contractor.model_dump()) if self.contractor else None,
            consultant=StagedMember(**self.consultant.model_dump()) if self.consultant else None,
            team_members=[StagedMember(**m.model_dump()) for m in self.team_members],
        )


class SignupResponse(ApiModel):
    success: bool
    message: str
    session_id: str
    expires_in_seconds: int


class FinalizeRequest(SignupRequest):
    """Signup graph held by the client, submitted after verification."""

    email: EmailStr
    session_id: str = Field(..., min_length=1)


class FinalizeResponse(ApiModel):
    success: bool
    message: str | None = None
    error: str | None = None
    account_id: int | None = None


class VerifyCodeRequest(ApiModel):
    email: EmailStr
    session_id: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, max_length=64, description="Verification code from email")


class VerifyCodeResponse(ApiModel):
    verified: bool


class ResendRequest(ApiModel):
    email: EmailStr


class ResendResponse(ApiModel):
    success: bool
    session_id: str | None = None
    expires_in_seconds: int | None = None
    redirect: str | None = None


class LoginRequest(ApiModel):
    role: str
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginResponse(ApiModel):
    success: bool
    first_login: bool | None = None
    error: str | None = None


class SendVerificationRequest(ApiModel):
    """First-login request: the password is applied once the code is confirmed."""

    role: str
    email: EmailStr
    password: str = Field(..., min_length=8, description="New password (min 8 characters)")


class SendVerificationResponse(ApiModel):
    success: bool
    message: str | None = None
    error: str | None = None
    session_id: str | None = None


class ForgotPasswordRequest(ApiModel):
    role: str
    email: EmailStr


class ResetPasswordRequest(ApiModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=8, description="New password (min 8 characters)")


class ActionResponse(ApiModel):
    success: bool
    message: str | None = None
    error: str | None = None


class DeliveryEventsAck(ApiModel):
    received: int
    deverified: int
    skipped: int


class ErrorResponse(BaseModel):
    """Standard error response model."""

    success: bool = False
    error: str
