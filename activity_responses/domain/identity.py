"""Student and grader identity normalization.

A student is identified either by a numeric platform account id or by an
opaque externally-issued string (usually a UUID). Stored records carry up to
three legacy slots (student_id, creator_id, user_id) that are normalized
into the same tagged union used for matching and for the storage-level
uniqueness index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re

from activity_responses.domain.errors import DomainInvariantError, InvalidSubmission, MissingIdentity

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")

ANONYMOUS_GRADER = "Anonymous Grader"
# Placeholder the identity provider returns when a token has no usable name.
UNKNOWN_USER = "Unknown User"


@dataclass(frozen=True)
class NumericId:
    value: int

    @property
    def key(self) -> str:
        return f"num:{self.value}"


@dataclass(frozen=True)
class OpaqueId:
    value: str

    @property
    def key(self) -> str:
        return f"opq:{self.value}"


SubmissionIdentity = NumericId | OpaqueId


@dataclass(frozen=True)
class Principal:
    """Caller identity already verified at the HTTP boundary."""

    user_id: str | None = None
    username: str | None = None
    roles: frozenset[str] = field(default_factory=frozenset)

    def has_role(self, role: str) -> bool:
        return role in self.roles or f"ROLE_{role}" in self.roles or role.upper() in self.roles


@dataclass(frozen=True)
class IdentitySlots:
    student_id: int | None = None
    creator_id: str | None = None
    user_id: str | None = None

    def identities(self) -> tuple[SubmissionIdentity, ...]:
        found: list[SubmissionIdentity] = []
        if self.student_id is not None:
            found.append(NumericId(self.student_id))
        for raw in (self.creator_id, self.user_id):
            value = _clean(raw)
            if value is not None and OpaqueId(value) not in found:
                found.append(OpaqueId(value))
        return tuple(found)

    def keys(self) -> tuple[str, ...]:
        return tuple(identity.key for identity in self.identities())

    def primary(self) -> SubmissionIdentity:
        identities = self.identities()
        if not identities:
            raise DomainInvariantError("submission identity has no populated slot")
        return identities[0]

    def matches(self, identity: SubmissionIdentity) -> bool:
        return identity in self.identities()


@dataclass(frozen=True)
class IdentityClaims:
    """Raw identity fields as supplied by a request."""

    student_id: str | int | None = None
    creator_id: str | None = None
    user_id: str | None = None


@dataclass(frozen=True)
class ResolvedIdentity:
    identity: SubmissionIdentity
    slots: IdentitySlots


def parse_identity(raw: str | int) -> SubmissionIdentity:
    """Integer-looking values are account ids; everything else is opaque."""
    if isinstance(raw, int):
        return NumericId(_checked_int(raw))
    numeric = _parse_int(raw)
    if numeric is not None:
        return NumericId(numeric)
    value = _clean(raw)
    if value is None:
        raise MissingIdentity("identity value is blank")
    return OpaqueId(value)


def slots_for(identity: SubmissionIdentity) -> IdentitySlots:
    if isinstance(identity, NumericId):
        return IdentitySlots(student_id=identity.value)
    return IdentitySlots(creator_id=identity.value)


def resolve_identity(claims: IdentityClaims, principal: Principal | None = None) -> ResolvedIdentity:
    creator_id = _clean(claims.creator_id)
    user_id = _clean(claims.user_id)

    if claims.student_id is not None:
        numeric = (
            _checked_int(claims.student_id) if isinstance(claims.student_id, int) else _parse_int(claims.student_id)
        )
        if numeric is not None:
            slots = IdentitySlots(student_id=numeric, creator_id=creator_id, user_id=user_id)
            return ResolvedIdentity(identity=NumericId(numeric), slots=slots)
        opaque = _clean(claims.student_id)
        if opaque is not None:
            # An explicit creator_id keeps its slot; the opaque student id
            # then takes user_id when that slot is free.
            if creator_id is None:
                slots = IdentitySlots(creator_id=opaque, user_id=user_id)
            else:
                slots = IdentitySlots(creator_id=creator_id, user_id=user_id or opaque)
            return ResolvedIdentity(identity=OpaqueId(creator_id or opaque), slots=slots)

    if creator_id is not None or user_id is not None:
        slots = IdentitySlots(creator_id=creator_id, user_id=user_id)
        return ResolvedIdentity(identity=OpaqueId(creator_id or user_id or ""), slots=slots)

    # Token-derived identity only fills in when the request names nobody.
    if principal is not None and _clean(principal.user_id) is not None:
        identity = parse_identity(principal.user_id or "")
        return ResolvedIdentity(identity=identity, slots=slots_for(identity))

    raise MissingIdentity("student identity is required")


def resolve_display_name(explicit: str | None, principal: Principal | None = None) -> str:
    name = _clean(explicit)
    if name is not None:
        return name
    if principal is not None:
        from_token = _clean(principal.username)
        if from_token is not None and from_token != UNKNOWN_USER:
            return from_token
    raise InvalidSubmission("student name is required")


def resolve_grader(principal: Principal | None) -> tuple[str, str | None]:
    if principal is None:
        return ANONYMOUS_GRADER, None
    name = _clean(principal.username)
    if name is None or name == UNKNOWN_USER:
        name = ANONYMOUS_GRADER
    return name, _clean(principal.user_id)


def _checked_int(value: int) -> int:
    # bool is an int subclass; true must not become account 1.
    if isinstance(value, bool):
        raise InvalidSubmission("student id must be an integer or a string")
    if not INT64_MIN <= value <= INT64_MAX:
        raise InvalidSubmission("student id is out of range")
    return value


def _parse_int(raw: str) -> int | None:
    value = raw.strip()
    if not _INTEGER_PATTERN.fullmatch(value):
        return None
    parsed = int(value)
    if not INT64_MIN <= parsed <= INT64_MAX:
        return None
    return parsed


def _clean(raw: str | None) -> str | None:
    if raw is None:
        return None
    value = raw.strip()
    return value or None
