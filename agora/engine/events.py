"""
agora.engine.events — Actor, User References and Notification Events
=====================================================================

The small value types that flow between services.  Every request is
performed by an :class:`Actor` (identity, role and tenant claimed by the
authentication layer); every stored creator reference becomes a
:class:`UserRef`; every side effect worth telling someone about becomes a
:class:`ForumEvent` with a :class:`RecipientRule`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from agora.database.models import Role

__all__ = [
    "Actor",
    "UserRef",
    "ForumEvent",
    "RecipientScope",
    "RecipientRule",
    "recipient_type_for",
]


@dataclass(frozen=True, slots=True)
class Actor:
    """The authenticated caller.  The role claim is trusted input."""

    id: str
    role: Role
    tenant_key: str | None = None

    @property
    def ref(self) -> UserRef:
        return UserRef(self.id, self.role)


@dataclass(frozen=True, slots=True)
class UserRef:
    """(id, role) pair; the role decides which identity store holds the id."""

    id: str
    role: str


class ForumEvent(enum.StrEnum):
    NEW_DISCUSSION = "new_discussion"
    NEW_REPLY = "new_reply"
    NEW_LIKE = "new_like"
    NEW_MENTION = "new_mention"
    NEW_REPORT = "new_report"


class RecipientScope(enum.StrEnum):
    USER = "user"                    # one specific account
    TENANT_EXCEPT_ACTOR = "tenant"   # every tenant account except the actor
    ADMINS = "admins"                # tenant administrators + super admins


@dataclass(frozen=True, slots=True)
class RecipientRule:
    """Who receives a notification.  Broadcast scopes are expanded lazily,
    inside the fanout task, so the request never pays for the lookup."""

    scope: RecipientScope
    user: UserRef | None = None
    exclude: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def single(cls, user: UserRef) -> RecipientRule:
        return cls(RecipientScope.USER, user=user)

    @classmethod
    def tenant_except(cls, actor_id: str) -> RecipientRule:
        return cls(RecipientScope.TENANT_EXCEPT_ACTOR, exclude=frozenset({actor_id}))

    @classmethod
    def admins(cls, actor_id: str | None = None) -> RecipientRule:
        return cls(
            RecipientScope.ADMINS,
            exclude=frozenset({actor_id}) if actor_id else frozenset(),
        )


def recipient_type_for(role: str) -> str:
    """Collaborator-facing recipient type: ``member`` or ``staff``."""
    return "member" if role == Role.MEMBER else "staff"
