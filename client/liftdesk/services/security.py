from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

import jwt

from liftdesk.core.config import settings
from liftdesk.schemas import Role, TokenClaims


class InvalidTokenClaims(Exception):
    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidTokenClaims("INVALID_TIMESTAMP") from exc


def _role(payload: Dict[str, Any]) -> Role:
    raw = payload.get("role")
    if raw is None and isinstance(payload.get("roles"), list) and payload["roles"]:
        raw = payload["roles"][0]
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidTokenClaims("MISSING_ROLE")
    normalized = raw.strip().upper()
    if normalized.startswith("ROLE_"):
        normalized = normalized[len("ROLE_"):]
    try:
        return Role(normalized)
    except ValueError as exc:
        raise InvalidTokenClaims("UNKNOWN_ROLE") from exc


def _user_id(payload: Dict[str, Any]) -> Optional[int]:
    raw = payload.get("userId", payload.get("user_id"))
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidTokenClaims("INVALID_USER_ID") from exc


def decode_payload(
    token: str,
    *,
    verify_key: Optional[str] = None,
    algorithms: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    if not token or token.count(".") != 2:
        raise InvalidTokenClaims("MALFORMED_TOKEN")
    if not token.rsplit(".", 1)[1]:
        raise InvalidTokenClaims("UNSIGNED_TOKEN")
    try:
        header = jwt.get_unverified_header(token)
    except jwt.InvalidTokenError as exc:
        raise InvalidTokenClaims("MALFORMED_TOKEN") from exc
    algorithm = str(header.get("alg") or "")
    if not algorithm or algorithm.lower() == "none":
        raise InvalidTokenClaims("UNSIGNED_TOKEN")

    key = verify_key if verify_key is not None else settings.jwt_verify_key
    try:
        if key:
            return jwt.decode(
                token,
                key,
                algorithms=list(algorithms or settings.jwt_algorithms),
                options={"verify_exp": False, "verify_aud": False},
            )
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        raise InvalidTokenClaims("INVALID_TOKEN") from exc


def parse_claims(
    token: str,
    *,
    verify_key: Optional[str] = None,
    algorithms: Optional[Sequence[str]] = None,
) -> TokenClaims:
    """Parse the access token payload into typed claims.

    Fails closed: anything undecodable, unsigned, missing a subject or
    carrying an unknown role raises ``InvalidTokenClaims`` instead of being
    mapped to a default role.
    """

    payload = decode_payload(token, verify_key=verify_key, algorithms=algorithms)
    subject = payload.get("sub") or payload.get("username")
    if subject is None or not str(subject).strip():
        raise InvalidTokenClaims("MISSING_SUBJECT")
    username = payload.get("username")
    return TokenClaims(
        subject=str(subject),
        user_id=_user_id(payload),
        username=str(username) if username else None,
        role=_role(payload),
        expires_at=_timestamp(payload.get("exp")),
        issued_at=_timestamp(payload.get("iat")),
    )


def try_parse_claims(token: Optional[str]) -> Optional[TokenClaims]:
    if not token:
        return None
    try:
        return parse_claims(token)
    except InvalidTokenClaims:
        return None


def should_refresh(token: Optional[str], leeway_seconds: Optional[int] = None, now: Optional[datetime] = None) -> bool:
    """True when a readable token expires within the leeway."""

    claims = try_parse_claims(token)
    if claims is None:
        return False
    remaining = claims.seconds_until_expiry(now)
    if remaining is None:
        return False
    leeway = settings.token_refresh_leeway_seconds if leeway_seconds is None else leeway_seconds
    return remaining < leeway
