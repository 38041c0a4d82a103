"""Bearer-token verification for the HTTP boundary.

Claims are only trusted after the signature (and issuer/audience when
configured) check out. Unverifiable tokens behave like anonymous callers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging

from jose import jwt
from jose.exceptions import JOSEError

from activity_responses.domain.identity import UNKNOWN_USER, Principal

logger = logging.getLogger("activity_responses")


@dataclass(frozen=True)
class JwtIdentityProvider:
    secret: str
    algorithms: tuple[str, ...] = ("HS256",)
    issuer: str | None = None
    audience: str | None = None

    def claims(self, token: str) -> Mapping[str, object] | None:
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=list(self.algorithms),
                issuer=self.issuer,
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except JOSEError:
            logger.info("bearer token rejected")
            return None

    def principal(self, token: str) -> Principal | None:
        claims = self.claims(token)
        if claims is None:
            return None
        return Principal(
            user_id=_user_id(claims),
            username=_username(claims),
            roles=frozenset(_roles(claims)),
        )

    def extract_user_id(self, token: str) -> str | None:
        claims = self.claims(token)
        return _user_id(claims) if claims is not None else None

    def extract_username(self, token: str) -> str:
        claims = self.claims(token)
        if claims is None:
            return UNKNOWN_USER
        return _username(claims) or UNKNOWN_USER

    def has_role(self, token: str, role: str) -> bool:
        principal = self.principal(token)
        return principal is not None and principal.has_role(role)


def _user_id(claims: Mapping[str, object]) -> str | None:
    sub = claims.get("sub")
    if sub is None:
        return None
    return str(sub)


def _username(claims: Mapping[str, object]) -> str | None:
    for key in ("name", "preferred_username", "sub"):
        value = claims.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _roles(claims: Mapping[str, object]) -> list[str]:
    realm_access = claims.get("realm_access")
    if isinstance(realm_access, Mapping):
        roles = realm_access.get("roles")
        if isinstance(roles, list):
            return [str(role) for role in roles]
    roles = claims.get("roles")
    if isinstance(roles, list):
        return [str(role) for role in roles]
    return []


def bearer_token(authorization: str | None) -> str | None:
    if authorization is None:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
