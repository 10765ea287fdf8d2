from typing import Literal

from pydantic import AliasChoices, BaseModel, Field


class SendOTPRequest(BaseModel):
    email: str | None = None
    verificationToken: str | None = None


class VerifyOTPRequest(BaseModel):
    email: str | None = None
    code: str | None = Field(default=None, validation_alias=AliasChoices("code", "otp"))


class OTPResponse(BaseModel):
    ok: Literal[True] = True
    message: str


class ErrorResponse(BaseModel):
    ok: Literal[False] = False
    reason: Literal[
        "invalid_input",
        "verification_failed",
        "delivery_failed",
        "server_misconfigured",
        "not_found_or_expired",
        "expired",
        "invalid_code",
    ]
    message: str
