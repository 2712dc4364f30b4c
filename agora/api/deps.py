"""
agora.api.deps — FastAPI dependency injection
==============================================

Bearer JWT → :class:`Actor` → :class:`TenantContext`.  Tokens carry
``sub`` (account id), ``role`` and ``tenant`` claims.  Super admins are not
bound to a tenant and pick one per request with the ``X-Tenant-Key`` header.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, Query, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from agora.config import AgoraConfig
from agora.config import get_config as _active_config
from agora.database.engine import create_db_engine
from agora.database.models import Role
from agora.database.tenants import TenantContext, TenantRouter
from agora.engine.events import Actor
from agora.engine.pagination import PageRequest

_WEAK_SECRETS = frozenset({
    "agora-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_central_engine() -> Engine:
    return create_db_engine(os.getenv("CENTRAL_DATABASE_URL", ""))


@lru_cache(maxsize=1)
def get_router() -> TenantRouter:
    return TenantRouter(get_central_engine())


def get_config() -> AgoraConfig:
    return _active_config()


def get_actor(
    authorization: Annotated[str | None, Header()] = None,
    x_tenant_key: Annotated[str | None, Header()] = None,
) -> Actor:
    """Validate the bearer token and return the caller.  Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")

    user_id = payload.get("sub")
    try:
        role = Role(payload.get("role", ""))
    except ValueError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid role claim")
    if not user_id:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid subject claim")

    tenant_key = payload.get("tenant")
    if role == Role.SUPER_ADMIN and x_tenant_key:
        tenant_key = x_tenant_key
    return Actor(id=str(user_id), role=role, tenant_key=tenant_key)


def get_tenant(
    actor: Annotated[Actor, Depends(get_actor)],
    router: Annotated[TenantRouter, Depends(get_router)],
) -> TenantContext:
    """Route the request to the caller's tenant store (404 if unknown)."""
    if not actor.tenant_key:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "No tenant selected")
    return router.get_tenant_context(actor.tenant_key)


def get_page(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int | None, Query(ge=1)] = None,
    cfg: AgoraConfig = Depends(get_config),
) -> PageRequest:
    return PageRequest.build(
        page, limit, default_limit=cfg.default_page_size, max_limit=cfg.max_page_size
    )


ActorDep = Annotated[Actor, Depends(get_actor)]
TenantDep = Annotated[TenantContext, Depends(get_tenant)]
PageDep = Annotated[PageRequest, Depends(get_page)]
