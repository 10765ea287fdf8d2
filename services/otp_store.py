import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from database import get_session, init_db
from otpmodel.otp_model import OTPEntry

logger = logging.getLogger("otp_login_api.store")


class OTPStore(ABC):
    """
    Storage for OTP entries keyed by email.

    Implementations never expire entries on their own; expiry is decided by the caller.
    """

    @abstractmethod
    def put(self, email: str, code_hash: str, issued_at: datetime) -> None:
        """Create or replace the entry for `email`."""

    @abstractmethod
    def get(self, email: str) -> OTPEntry | None:
        ...

    @abstractmethod
    def delete(self, email: str) -> None:
        """Remove the entry for `email` if there is one."""


class InMemoryOTPStore(OTPStore):
    """Volatile, process-local store. Entries are lost on restart."""

    def __init__(self):
        self._entries: dict[str, OTPEntry] = {}
        self._lock = threading.Lock()

    def put(self, email, code_hash, issued_at):
        with self._lock:
            self._entries[email] = OTPEntry(email=email, hash=code_hash, created_at=issued_at)

    def get(self, email):
        with self._lock:
            return self._entries.get(email)

    def delete(self, email):
        with self._lock:
            self._entries.pop(email, None)

    def __len__(self):
        return len(self._entries)


class DatabaseOTPStore(OTPStore):
    def __init__(self, bind=None):
        self.bind = bind
        init_db(bind)

    def put(self, email, code_hash, issued_at):
        with get_session(self.bind) as session:
            entry = OTPEntry(email=email, hash=code_hash, created_at=issued_at)
            session.merge(entry)
            session.commit()

    def get(self, email):
        with get_session(self.bind) as session:
            entry = session.get(OTPEntry, email)
            if entry is None:
                return None
            session.expunge(entry)

        # SQLite stores naive datetime, so replace tzinfo
        if entry.created_at.tzinfo is None:
            entry.created_at = entry.created_at.replace(tzinfo=timezone.utc)
        return entry

    def delete(self, email):
        with get_session(self.bind) as session:
            entry = session.get(OTPEntry, email)
            if entry is not None:
                session.delete(entry)
                session.commit()


def build_store(backend: str) -> OTPStore:
    if backend == "memory":
        return InMemoryOTPStore()
    if backend == "database":
        return DatabaseOTPStore()
    raise ValueError(f"Unknown OTP store backend: {backend}")
