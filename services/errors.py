from fastapi import HTTPException, status


class OTPError(HTTPException):
    """Base for every failed OTP outcome; `reason` is the machine-readable code sent to clients."""

    reason: str = "error"
    status_code_default: int = status.HTTP_400_BAD_REQUEST
    message: str = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=message or self.message,
        )


class InvalidInput(OTPError):
    reason = "invalid_input"
    message = "Email and code are required"


class VerificationChallengeFailed(OTPError):
    reason = "verification_failed"
    message = "Human verification failed"


class ServerMisconfigured(OTPError):
    reason = "server_misconfigured"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Server is not configured to handle this request"


class DeliveryFailed(OTPError):
    reason = "delivery_failed"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Failed to send OTP"


class NotFoundOrExpired(OTPError):
    reason = "not_found_or_expired"
    message = "Invalid OTP or session expired"


class Expired(OTPError):
    reason = "expired"
    message = "OTP has expired. Please request a new one."


class InvalidCode(OTPError):
    reason = "invalid_code"
    message = "Invalid OTP"


# Collaborator failures, translated into OTPError by the OTP service.
class EmailDeliveryError(Exception):
    pass


class CaptchaProviderError(Exception):
    pass
