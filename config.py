import os

from starlette.config import Config
from starlette.datastructures import CommaSeparatedStrings, Secret

# If APP_CONFIG is set, use that as the path to the .env file, or default to .env
env_file = os.getenv("APP_CONFIG", ".env")
if "APP_CONFIG" in os.environ and not os.path.isfile(env_file):
    raise FileNotFoundError(f"The configuration file specified in APP_CONFIG or the default .env does not exist: {env_file}")

config = Config(env_file)

# Application Configuration
CORS_ORIGINS: CommaSeparatedStrings = config(
    "CORS_ORIGINS", cast=CommaSeparatedStrings, default=CommaSeparatedStrings([])
)
DEBUG: bool = config("DEBUG", cast=bool, default=False)

# OTP Configuration
OTP_LIFETIME_MINUTES: int = config("OTP_LIFETIME_MINUTES", cast=int, default=5)
OTP_EMAIL_SUBJECT: str = config("OTP_EMAIL_SUBJECT", default="Your Login Verification Code")
OTP_APP_NAME: str = config("OTP_APP_NAME", default="Campus System")

# Storage Configuration ("memory" or "database")
OTP_STORE_BACKEND: str = config("OTP_STORE_BACKEND", default="memory")
DATABASE_URL: str = config("DATABASE_URL", default="sqlite:///./otp_database.db")

# Email Configuration ("ses" or "console")
EMAIL_BACKEND: str = config("EMAIL_BACKEND", default="ses")

# AWS SES Configuration
AWS_REGION: str = config("AWS_REGION", default="us-east-2")
AWS_ACCESS_KEY: Secret | None = config("AWS_ACCESS_KEY", cast=Secret, default=None)
AWS_SECRET_ACCESS_KEY: Secret | None = config("AWS_SECRET_ACCESS_KEY", cast=Secret, default=None)
AWS_SES_SENDER_EMAIL: str = config("AWS_SES_SENDER_EMAIL", default="no-reply@example.org")

# Human verification (reCAPTCHA / Turnstile compatible siteverify endpoint)
CAPTCHA_SECRET_KEY: Secret | None = config("CAPTCHA_SECRET_KEY", cast=Secret, default=None)
CAPTCHA_VERIFY_URL: str = config(
    "CAPTCHA_VERIFY_URL", default="https://www.google.com/recaptcha/api/siteverify"
)
CAPTCHA_TIMEOUT_SECONDS: float = config("CAPTCHA_TIMEOUT_SECONDS", cast=float, default=10.0)


def check_configuration() -> list[str]:
    """Return a description of every missing setting the service needs at request time."""
    problems = []
    if CAPTCHA_SECRET_KEY is None:
        problems.append("CAPTCHA_SECRET_KEY is not set; challenged OTP requests will be refused")
    if EMAIL_BACKEND == "ses" and (AWS_ACCESS_KEY is None or AWS_SECRET_ACCESS_KEY is None):
        problems.append("AWS_ACCESS_KEY / AWS_SECRET_ACCESS_KEY are not set; SES delivery will fail")
    if not list(CORS_ORIGINS):
        problems.append("CORS_ORIGINS is empty; browsers will not be able to call the API")
    return problems
