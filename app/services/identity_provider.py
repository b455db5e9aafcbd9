"""Identity providers — create login accounts for newly provisioned users.

``sign_up`` never raises for provider-level failures; it reports them on the
returned :class:`SignUpResult`. An email that already has an account is
flagged with ``already_registered`` so the provisioning workflow can switch to
updating the existing profile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import bcrypt
import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from supabase import AuthError

from app.models.auth_identity import AuthIdentity

logger = logging.getLogger(__name__)

ALREADY_REGISTERED_MESSAGE = "User already registered"

_ALREADY_REGISTERED_CODES = {"user_already_exists", "email_exists"}


@dataclass(frozen=True)
class IdentityUser:
    id: str
    email: str
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SignUpResult:
    user: IdentityUser | None = None
    error: str | None = None
    already_registered: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.user is not None


class IdentityProvider(Protocol):
    def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> SignUpResult: ...


def is_already_registered_message(message: str | None) -> bool:
    text = (message or "").lower()
    return "already registered" in text or "already been registered" in text


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


class LocalIdentityProvider:
    """Accounts stored in ``auth_identities`` with bcrypt password hashes."""

    def __init__(self, db: Session):
        self.db = db

    def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> SignUpResult:
        email = email.strip().lower()
        try:
            existing = self.db.scalars(select(AuthIdentity).where(AuthIdentity.email == email)).first()
            if existing:
                return SignUpResult(error=ALREADY_REGISTERED_MESSAGE, already_registered=True)

            identity = AuthIdentity(
                email=email,
                password_hash=hash_password(password),
                user_metadata=dict(metadata),
            )
            self.db.add(identity)
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent sign-up for the same email.
            self.db.rollback()
            return SignUpResult(error=ALREADY_REGISTERED_MESSAGE, already_registered=True)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Local sign-up for %s failed: %s", email, exc)
            return SignUpResult(error=str(exc))

        logger.info("Created local identity %s for %s", identity.id, email)
        return SignUpResult(user=IdentityUser(id=identity.id, email=email, metadata=dict(metadata)))


class SupabaseIdentityProvider:
    """Supabase Auth via the admin API; accounts are created pre-confirmed."""

    def __init__(self, client: Any):
        self.client = client

    def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> SignUpResult:
        email = email.strip().lower()
        try:
            response = self.client.auth.admin.create_user(
                {
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": dict(metadata),
                }
            )
        except AuthError as exc:
            code = getattr(exc, "code", None)
            if code in _ALREADY_REGISTERED_CODES or is_already_registered_message(exc.message):
                return SignUpResult(error=ALREADY_REGISTERED_MESSAGE, already_registered=True)
            logger.error("Supabase sign-up for %s failed: %s", email, exc.message)
            return SignUpResult(error=exc.message)
        except httpx.HTTPError as exc:
            logger.error("Supabase sign-up for %s failed: %s", email, exc)
            return SignUpResult(error=str(exc))

        user = getattr(response, "user", None)
        if user is None:
            return SignUpResult(error="Identity provider returned no user")
        return SignUpResult(
            user=IdentityUser(id=str(user.id), email=user.email or email, metadata=user.user_metadata or {})
        )
