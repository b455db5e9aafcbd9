import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Header, HTTPException, Request
from jwt.exceptions import ExpiredSignatureError
from jwt.exceptions import PyJWTError as JWTError

from app.config import settings
from app.services.exceptions import ValidationError
from app.services.roles import Role, parse_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdminContext:
    """Who is acting on this request; built from a verified token, never cached."""

    user_id: str
    email: str | None = None
    roles: frozenset[Role] = field(default_factory=frozenset)

    @property
    def is_master_admin(self) -> bool:
        return Role.master_admin in self.roles


def _extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip()
    return None


def _jwt_secret() -> str:
    if not settings.jwt_secret:
        logger.error("JWT_SECRET is not configured; rejecting admin request")
        raise HTTPException(status_code=503, detail="Authentication is not configured")
    return settings.jwt_secret


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(
            token,
            _jwt_secret(),
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False, "require": ["sub", "exp"]},
        )
    except ExpiredSignatureError as exc:
        raise HTTPException(status_code=401, detail="Token expired") from exc
    except JWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc


def _token_roles(payload: dict) -> frozenset[Role]:
    raw: list[str] = []
    role_value = payload.get("role")
    if isinstance(role_value, str):
        raw.append(role_value)
    roles_value = payload.get("roles")
    if isinstance(roles_value, list):
        raw.extend(str(item) for item in roles_value)
    # Hosted-auth tokens carry the application role in app_metadata.
    app_metadata = payload.get("app_metadata")
    if isinstance(app_metadata, dict) and isinstance(app_metadata.get("role"), str):
        raw.append(app_metadata["role"])

    roles: set[Role] = set()
    for value in raw:
        try:
            roles.add(parse_role(value))
        except ValidationError:
            continue
    return frozenset(roles)


def issue_access_token(
    user_id: str,
    email: str | None = None,
    role: str = "master_admin",
    expires_minutes: int = 60,
) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, _jwt_secret(), algorithm=settings.jwt_algorithm)


def require_master_admin(
    request: Request,
    authorization: str | None = Header(default=None),
) -> AdminContext:
    token = _extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    payload = decode_access_token(token)
    context = AdminContext(
        user_id=str(payload["sub"]),
        email=payload.get("email"),
        roles=_token_roles(payload),
    )
    if not context.is_master_admin:
        logger.warning("User %s attempted a master-admin operation", context.user_id)
        raise HTTPException(status_code=403, detail="Master admin role required")
    request.state.actor_id = context.user_id
    return context
