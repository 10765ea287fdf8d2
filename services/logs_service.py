import logging

# Config logging
logger = logging.getLogger("otp_login_api")
logger.setLevel(logging.INFO)

if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")

    handler.setFormatter(formatter)
    logger.addHandler(handler)
