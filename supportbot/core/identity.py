"""
Caller identity resolution.

An identity is a tagged value carried through the pipeline:
``Authenticated(user_id)`` for verified tokens, ``Anonymous(fingerprint)``
for everyone else, and ``NO_IDENTITY`` when there is nothing to go on.
Only the chat repository turns it into storage columns.
"""

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional, Union

from jose import JWTError, jwt

logger = logging.getLogger("supportbot.identity")

# Fingerprints live in [-(2**31 - 1), -1]
_FINGERPRINT_SPACE = 2 ** 31 - 1


@dataclass(frozen=True)
class Authenticated:
    user_id: int

    def __post_init__(self):
        if self.user_id <= 0:
            raise ValueError("authenticated user ids are positive")


@dataclass(frozen=True)
class Anonymous:
    fingerprint: int

    def __post_init__(self):
        if self.fingerprint >= 0:
            raise ValueError("anonymous fingerprints are negative")


@dataclass(frozen=True)
class NoIdentity:
    pass


NO_IDENTITY = NoIdentity()

Identity = Union[Authenticated, Anonymous, NoIdentity]


def fingerprint_origin(origin: str) -> int:
    """Deterministic negative fingerprint for a network origin."""
    digest = hashlib.sha256(origin.strip().encode("utf-8")).digest()
    hashed = int.from_bytes(digest[:8], "big")
    return -((hashed % _FINGERPRINT_SPACE) + 1)


class IdentityResolver:
    """
    Maps (token, origin) to an Identity.

    Pure: verifies the token signature locally and never touches the store.
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def user_id_from_token(self, token: Optional[str]) -> Optional[int]:
        if not token or not self.secret_key:
            return None
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.debug(f"Rejected bearer token: {e}")
            return None
        raw_id = payload.get("id", payload.get("sub"))
        try:
            user_id = int(raw_id)
        except (TypeError, ValueError):
            return None
        return user_id if user_id > 0 else None

    def resolve(self, token: Optional[str], origin: Optional[str]) -> Identity:
        user_id = self.user_id_from_token(token)
        if user_id is not None:
            return Authenticated(user_id)
        return self.anonymous(origin)

    @staticmethod
    def anonymous(origin: Optional[str]) -> Identity:
        if origin and origin.strip():
            return Anonymous(fingerprint_origin(origin))
        return NO_IDENTITY


def describe_identity(identity: Identity) -> str:
    """Short label for logs; never includes the raw origin."""
    if isinstance(identity, Authenticated):
        return f"user:{identity.user_id}"
    if isinstance(identity, Anonymous):
        return f"anon:{identity.fingerprint}"
    return "none"
