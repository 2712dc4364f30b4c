"""
agora.services.identity_service — Two-Store Identity Resolver
==============================================================

**Why this file exists:**
A creator reference is an ``(id, role)`` pair.  Member accounts live in the
tenant store, staff accounts (instructor, admin, super admin) in the central
store.  This module is the only place that knows which is which; every
other module asks for a :class:`UserSummary` and gets one back, or ``None``
when the account is missing or soft-deleted.

Lookups are read-only.  ``resolve_many`` issues at most one query per store
no matter how many references it receives.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from agora.constants import ADMIN_ROLES, STAFF_ROLES
from agora.database.models import Member, Role, StaffAccount
from agora.database.tenants import TenantContext
from agora.engine.events import UserRef


@dataclass(frozen=True, slots=True)
class UserSummary:
    id: str
    first_name: str
    last_name: str
    email: str
    image: str | None
    role: str

    @property
    def ref(self) -> UserRef:
        return UserRef(self.id, self.role)

    def to_dict(self) -> dict:
        return asdict(self)


def _from_member(row: Member) -> UserSummary:
    return UserSummary(row.id, row.first_name, row.last_name, row.email, row.image, Role.MEMBER.value)


def _from_staff(row: StaffAccount) -> UserSummary:
    return UserSummary(row.id, row.first_name, row.last_name, row.email, row.image, row.role)


def _staff_of_tenant(ctx: TenantContext) -> Select:
    """Staff visible inside *ctx*: the tenant's own staff plus super admins."""
    return select(StaffAccount).where(
        StaffAccount.deleted_at.is_(None),
        or_(StaffAccount.tenant_key == ctx.key, StaffAccount.role == Role.SUPER_ADMIN.value),
    )


# ---------------------------------------------------------------------------
# Single and batched resolution
# ---------------------------------------------------------------------------
def resolve(ctx: TenantContext, user_id: str, role: str) -> UserSummary | None:
    """Resolve one account against the store its role points to."""
    if role == Role.MEMBER:
        with Session(ctx.store) as session:
            row = session.get(Member, user_id)
            return _from_member(row) if row is not None and row.deleted_at is None else None

    with Session(ctx.central) as session:
        row = session.get(StaffAccount, user_id)
        if row is None or row.deleted_at is not None:
            return None
        return _from_staff(row)


def resolve_many(ctx: TenantContext, refs: Iterable[UserRef]) -> dict[UserRef, UserSummary]:
    """Resolve a batch of references; unknown or deleted ones are absent.

    The result is keyed by ``UserRef`` so two references that happen to share
    an id but differ in role never collapse into one entry.
    """
    refs = set(refs)
    member_ids = {ref.id for ref in refs if ref.role == Role.MEMBER}
    staff_ids = {ref.id for ref in refs if ref.role != Role.MEMBER}
    found: dict[UserRef, UserSummary] = {}

    if member_ids:
        with Session(ctx.store) as session:
            rows = session.scalars(
                select(Member).where(Member.id.in_(member_ids), Member.deleted_at.is_(None))
            ).all()
            for row in rows:
                summary = _from_member(row)
                found[summary.ref] = summary

    if staff_ids:
        with Session(ctx.central) as session:
            rows = session.scalars(
                select(StaffAccount).where(
                    StaffAccount.id.in_(staff_ids), StaffAccount.deleted_at.is_(None)
                )
            ).all()
            staff_by_id = {row.id: _from_staff(row) for row in rows}
        # Keyed by the role the caller holds, even if the account was promoted since
        for ref in refs:
            if ref.role != Role.MEMBER and ref.id in staff_by_id:
                found[ref] = staff_by_id[ref.id]

    return found


def summary_dict(
    resolved: dict[UserRef, UserSummary], user_id: str | None, role: str | None
) -> dict | None:
    """Look one reference up in a ``resolve_many`` result, as a plain dict."""
    if user_id is None or role is None:
        return None
    summary = resolved.get(UserRef(user_id, role))
    return summary.to_dict() if summary else None


# ---------------------------------------------------------------------------
# Tenant-wide account listings (fanout, autocomplete)
# ---------------------------------------------------------------------------
def list_tenant_accounts(ctx: TenantContext) -> list[UserRef]:
    """Every live account that belongs to the tenant: members and staff."""
    with Session(ctx.store) as session:
        member_ids = session.scalars(select(Member.id).where(Member.deleted_at.is_(None))).all()
    with Session(ctx.central) as session:
        staff = session.execute(
            select(StaffAccount.id, StaffAccount.role).where(
                StaffAccount.deleted_at.is_(None), StaffAccount.tenant_key == ctx.key
            )
        ).all()
    return [UserRef(mid, Role.MEMBER.value) for mid in member_ids] + [
        UserRef(row.id, row.role) for row in staff
    ]


def list_tenant_admins(ctx: TenantContext) -> list[UserRef]:
    """Tenant administrators plus every super admin."""
    with Session(ctx.central) as session:
        rows = session.execute(
            select(StaffAccount.id, StaffAccount.role).where(
                StaffAccount.deleted_at.is_(None),
                StaffAccount.role.in_(ADMIN_ROLES),
                or_(
                    StaffAccount.tenant_key == ctx.key,
                    StaffAccount.role == Role.SUPER_ADMIN.value,
                ),
            )
        ).all()
    return [UserRef(row.id, row.role) for row in rows]


def find_members_by_email(session: Session, emails: Iterable[str]) -> list[Member]:
    lowered = {email.lower() for email in emails}
    if not lowered:
        return []
    return list(
        session.scalars(
            select(Member)
            .where(func.lower(Member.email).in_(lowered), Member.deleted_at.is_(None))
            .order_by(Member.id)
        ).all()
    )


def find_staff_by_email(ctx: TenantContext, emails: Iterable[str]) -> list[StaffAccount]:
    lowered = {email.lower() for email in emails}
    if not lowered:
        return []
    with Session(ctx.central) as session:
        return list(
            session.scalars(
                _staff_of_tenant(ctx)
                .where(func.lower(StaffAccount.email).in_(lowered))
                .order_by(StaffAccount.id)
            ).all()
        )


def _local_part_pattern(handle: str) -> str:
    """``LIKE`` pattern for e-mails whose local part is exactly *handle*."""
    escaped = handle.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}@%"


def find_members_by_handle(session: Session, handles: Iterable[str]) -> list[Member]:
    """Members whose e-mail local part matches one of *handles*."""
    clauses = [
        func.lower(Member.email).like(_local_part_pattern(handle), escape="\\") for handle in handles
    ]
    if not clauses:
        return []
    return list(
        session.scalars(
            select(Member).where(Member.deleted_at.is_(None), or_(*clauses)).order_by(Member.id)
        ).all()
    )


def find_staff_by_handle(ctx: TenantContext, handles: Iterable[str]) -> list[StaffAccount]:
    clauses = [
        func.lower(StaffAccount.email).like(_local_part_pattern(handle), escape="\\")
        for handle in handles
    ]
    if not clauses:
        return []
    with Session(ctx.central) as session:
        return list(
            session.scalars(_staff_of_tenant(ctx).where(or_(*clauses)).order_by(StaffAccount.id)).all()
        )


def list_mention_candidates(
    ctx: TenantContext,
    actor_id: str,
    *,
    search: str | None = None,
    role: str | None = None,
    limit: int = 50,
) -> list[UserSummary]:
    """Accounts the actor can @mention, for autocomplete.

    Members first, then staff, each sorted by name.  ``role`` narrows the
    result to one role; ``search`` matches first name, last name or e-mail.
    """
    pattern = f"%{search.strip().lower()}%" if search and search.strip() else None
    results: list[UserSummary] = []

    if role in (None, Role.MEMBER):
        query = select(Member).where(Member.deleted_at.is_(None), Member.id != actor_id)
        if pattern:
            query = query.where(
                or_(
                    func.lower(Member.first_name).like(pattern),
                    func.lower(Member.last_name).like(pattern),
                    func.lower(Member.email).like(pattern),
                )
            )
        query = query.order_by(Member.first_name, Member.last_name).limit(limit)
        with Session(ctx.store) as session:
            results.extend(_from_member(row) for row in session.scalars(query).all())

    remaining = limit - len(results)
    if remaining > 0 and (role is None or role in STAFF_ROLES):
        query = select(StaffAccount).where(
            StaffAccount.deleted_at.is_(None),
            StaffAccount.tenant_key == ctx.key,
            StaffAccount.id != actor_id,
        )
        if role is not None:
            query = query.where(StaffAccount.role == role)
        if pattern:
            query = query.where(
                or_(
                    func.lower(StaffAccount.first_name).like(pattern),
                    func.lower(StaffAccount.last_name).like(pattern),
                    func.lower(StaffAccount.email).like(pattern),
                )
            )
        query = query.order_by(StaffAccount.first_name, StaffAccount.last_name).limit(remaining)
        with Session(ctx.central) as session:
            results.extend(_from_staff(row) for row in session.scalars(query).all())

    return results
