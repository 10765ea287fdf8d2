from sqlmodel import Session, SQLModel, create_engine

from config import DATABASE_URL
from otpmodel.otp_model import OTPEntry  # noqa: F401  (registers the table)

engine = create_engine(DATABASE_URL, echo=False)


def init_db(bind=None):
    SQLModel.metadata.create_all(bind or engine)


def get_session(bind=None):
    return Session(bind or engine)
