"""JWT creation and verification for session identity and quiz deadline tokens."""
from datetime import datetime, timezone, timedelta

import jwt

from app.core.errors import DeadlineTokenError
from app.core.settings import settings

DEADLINE_TOKEN_TYPE = "quiz_deadline"


def create_token(user_id: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(
        payload,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.PyJWTError:
        return None


def create_deadline_token(attempt_id: str, student_id: str, deadline: datetime) -> str:
    """Sign the server-issued deadline of a timed attempt.

    The client keeps its own countdown for display only; submission compares
    the server clock against the deadline carried here.
    """
    payload = {
        "typ": DEADLINE_TOKEN_TYPE,
        "sub": str(student_id),
        "attempt_id": attempt_id,
        "deadline": deadline.astimezone(timezone.utc).isoformat(),
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_deadline_token(token: str, attempt_id: str, student_id: str) -> datetime:
    # Expiry is judged by the caller against the signed deadline, so a late
    # submission can still be scored with the answers saved in time.
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as exc:
        raise DeadlineTokenError(f"Deadline token rejected: {exc}") from exc
    if claims.get("typ") != DEADLINE_TOKEN_TYPE:
        raise DeadlineTokenError("Token is not a quiz deadline token.")
    if claims.get("attempt_id") != attempt_id or claims.get("sub") != str(student_id):
        raise DeadlineTokenError("Deadline token does not belong to this attempt.")
    try:
        return datetime.fromisoformat(claims["deadline"])
    except (KeyError, TypeError, ValueError) as exc:
        raise DeadlineTokenError("Deadline token carries no valid deadline.") from exc
