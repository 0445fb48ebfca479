from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

import jwt
from jwt import InvalidTokenError

CAP_READ = "reservations:read"
CAP_MANAGE = "reservations:manage"
CAP_SECURITY = "security:read"
STAFF_CAPABILITIES = frozenset({CAP_READ, CAP_MANAGE, CAP_SECURITY})


@dataclass(frozen=True)
class StaffSession:
    subject: str
    name: str
    capabilities: frozenset[str]

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


def create_access_token(
    *,
    subject: str,
    secret: str,
    name: str = "",
    capabilities: Iterable[str] = STAFF_CAPABILITIES,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=30))
    payload = {
        "sub": str(subject),
        "name": name,
        "caps": sorted(capabilities),
        "iat": now,
        "exp": exp,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> StaffSession:
    try:
        payload = jwt.decode(token, secret, algorithms=list(algorithms))
    except InvalidTokenError as exc:  # includes ExpiredSignatureError
        raise ValueError("invalid token") from exc

    sub = payload.get("sub")
    if not sub:
        raise ValueError("token missing sub")
    caps = payload.get("caps", [])
    if not isinstance(caps, list) or not all(isinstance(c, str) for c in caps):
        raise ValueError("token caps must be a list of strings")
    return StaffSession(subject=str(sub), name=str(payload.get("name") or ""), capabilities=frozenset(caps))
