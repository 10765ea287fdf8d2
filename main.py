from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import (
    CORS_ORIGINS,
    EMAIL_BACKEND,
    OTP_LIFETIME_MINUTES,
    OTP_STORE_BACKEND,
    check_configuration,
)
from models import ErrorResponse, OTPResponse, SendOTPRequest, VerifyOTPRequest
from services.captcha_client import CaptchaClient
from services.email_service import build_sender
from services.errors import OTPError
from services.logs_service import logger
from services.otp_service import OTPService
from services.otp_store import build_store


def build_otp_service() -> OTPService:
    return OTPService(
        store=build_store(OTP_STORE_BACKEND),
        sender=build_sender(EMAIL_BACKEND),
        captcha=CaptchaClient(),
        lifetime_minutes=OTP_LIFETIME_MINUTES,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Missing credentials are reported loudly but the service keeps running;
    # affected requests fail with server_misconfigured / delivery_failed.
    for problem in check_configuration():
        logger.error(f"Configuration error: {problem}")

    if getattr(app.state, "otp_service", None) is None:
        logger.info(f"Starting up... store={OTP_STORE_BACKEND}, email={EMAIL_BACKEND}")
        app.state.otp_service = build_otp_service()
    yield


app = FastAPI(
    title="OTP Login API",
    description="Email one-time passcode issuance and verification",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(OTPError)
async def otp_error_handler(request: Request, exc: OTPError):
    body = ErrorResponse(reason=exc.reason, message=exc.detail)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Rejected malformed request body on {request.url.path}")
    body = ErrorResponse(reason="invalid_input", message="Malformed request body")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())


def get_otp_service(request: Request) -> OTPService:
    return request.app.state.otp_service


# Create router with /api/v1 prefix
router = APIRouter(prefix="/api/v1")

error_responses = {
    400: {"model": ErrorResponse, "description": "Invalid input, failed challenge or rejected code"},
    500: {"model": ErrorResponse, "description": "Delivery failed or server misconfigured"},
}


@router.post(
    "/auth/send-otp",
    response_model=OTPResponse,
    tags=["Authentication"],
    summary="Send OTP to email",
    description="Generate a one-time passcode for the email address and send it. "
    "A human verification token is checked first when supplied; requests without one "
    "(the resend action) skip the check. Any previous code for the address is replaced.",
    responses=error_responses,
)
async def send_otp(
    payload: SendOTPRequest,
    request: Request,
    service: OTPService = Depends(get_otp_service),
):
    remote_ip = request.client.host if request.client else None
    logger.info(f"Received OTP request for: {payload.email}")
    message = await service.issue(payload.email, payload.verificationToken, remote_ip)
    return OTPResponse(message=message)


@router.post(
    "/auth/verify-otp",
    response_model=OTPResponse,
    tags=["Authentication"],
    summary="Verify OTP",
    description="Verify a one-time passcode. A wrong code may be retried until the code "
    "expires; a correct code can be used only once.",
    responses=error_responses,
)
async def verify_otp(
    payload: VerifyOTPRequest,
    service: OTPService = Depends(get_otp_service),
):
    """Verify an OTP provided by the user."""
    message = await service.verify(payload.email, payload.code)
    return OTPResponse(message=message)


@router.get("/health", tags=["Health"], summary="Liveness check")
async def health():
    return {"ok": True}


app.include_router(router)
