"""
agora.services.notification_service — Fire-and-Forget Notification Fanout
==========================================================================

**Why this file exists:**
Creating a reply, liking a post or filing a report tells somebody about it.
Delivery is somebody else's job (push, e-mail, in-app inbox); this module
only decides *who* hears about an event and hands each recipient to a
:class:`NotificationDispatcher`.

Rules:
    1. Services call :func:`publish` only **after** their transaction
       committed.  Nothing here can roll back or fail the caller.
    2. Broadcast recipients (whole tenant, all admins) are expanded inside
       the background task, not in the request.
    3. Every failure (recipient lookup, a single ``send``) is logged with
       its stack and swallowed; one bad recipient never blocks the others.

Tests call ``configure(dispatcher, inline=True)`` so delivery happens on
the calling thread and can be asserted on directly.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

import httpx

from agora.config import AgoraConfig
from agora.constants import NOTIFICATION_TITLES
from agora.database.tenants import TenantContext
from agora.engine.events import (
    ForumEvent,
    RecipientRule,
    RecipientScope,
    UserRef,
    recipient_type_for,
)
from agora.engine.mentions import plain_text
from agora.services import identity_service

logger = logging.getLogger(__name__)

_PREVIEW_LENGTH = 200


class NotificationDispatcher(Protocol):
    def send(
        self,
        recipient_id: str,
        recipient_type: str,
        title: str,
        body: str,
        event_type: str,
        metadata: dict[str, Any],
        tenant_key: str,
    ) -> None: ...


# ---------------------------------------------------------------------------
# Dispatchers
# ---------------------------------------------------------------------------
class LoggingDispatcher:
    """Default dispatcher: records each notification in the log only."""

    def send(self, recipient_id, recipient_type, title, body, event_type, metadata, tenant_key):
        logger.info(
            "Notify [%s] %s %s: %s (%s)",
            tenant_key, recipient_type, recipient_id, title, event_type,
        )


class WebhookDispatcher:
    """POST every notification as JSON to one URL.

    A non-2xx answer raises, which the fanout logs against that recipient.
    """

    def __init__(self, url: str, timeout: float = 5.0, client: httpx.Client | None = None) -> None:
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, recipient_id, recipient_type, title, body, event_type, metadata, tenant_key):
        resp = self._client.post(
            self.url,
            json={
                "recipient_id": recipient_id,
                "recipient_type": recipient_type,
                "title": title,
                "body": body,
                "event_type": event_type,
                "metadata": metadata,
                "tenant_key": tenant_key,
            },
        )
        resp.raise_for_status()

    def close(self) -> None:
        self._client.close()


def build_dispatcher(cfg: AgoraConfig) -> NotificationDispatcher:
    if cfg.notification_webhook_url:
        return WebhookDispatcher(cfg.notification_webhook_url, cfg.notification_timeout_seconds)
    return LoggingDispatcher()


# ---------------------------------------------------------------------------
# Fanout
# ---------------------------------------------------------------------------
class NotificationFanout:
    """Expands a :class:`RecipientRule` and delivers on a worker pool."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher | None = None,
        workers: int = 4,
        inline: bool = False,
    ) -> None:
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.inline = inline
        self._executor = (
            None if inline else ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fanout")
        )

    def publish(
        self,
        ctx: TenantContext,
        event: ForumEvent,
        rule: RecipientRule,
        body: str,
        metadata: dict[str, Any] | None = None,
        title: str | None = None,
    ) -> None:
        title = title or NOTIFICATION_TITLES.get(event.value, event.value)
        preview = plain_text(body)[:_PREVIEW_LENGTH]
        metadata = dict(metadata or {})
        if self._executor is None:
            self._deliver(ctx, event, rule, title, preview, metadata)
            return
        try:
            self._executor.submit(self._deliver, ctx, event, rule, title, preview, metadata)
        except RuntimeError:
            logger.exception("Fanout pool unavailable; dropped %s notification", event.value)

    def recipients(self, ctx: TenantContext, rule: RecipientRule) -> list[UserRef]:
        if rule.scope == RecipientScope.USER:
            candidates = [rule.user] if rule.user is not None else []
        elif rule.scope == RecipientScope.TENANT_EXCEPT_ACTOR:
            candidates = identity_service.list_tenant_accounts(ctx)
        else:
            candidates = identity_service.list_tenant_admins(ctx)

        seen: set[str] = set()
        result: list[UserRef] = []
        for ref in candidates:
            if ref.id in rule.exclude or ref.id in seen:
                continue
            seen.add(ref.id)
            result.append(ref)
        return result

    def _deliver(
        self,
        ctx: TenantContext,
        event: ForumEvent,
        rule: RecipientRule,
        title: str,
        body: str,
        metadata: dict[str, Any],
    ) -> None:
        try:
            recipients = self.recipients(ctx, rule)
        except Exception:
            logger.exception("Recipient lookup failed for %s in %s", event.value, ctx.key)
            return

        for ref in recipients:
            try:
                self.dispatcher.send(
                    ref.id,
                    recipient_type_for(ref.role),
                    title,
                    body,
                    event.value,
                    metadata,
                    ctx.key,
                )
            except Exception:
                logger.exception(
                    "Failed to deliver %s notification to %s in %s",
                    event.value, ref.id, ctx.key,
                )

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
        close = getattr(self.dispatcher, "close", None)
        if callable(close):
            close()


# ---------------------------------------------------------------------------
# Module singleton
# ---------------------------------------------------------------------------
_fanout: NotificationFanout | None = None
_lock = threading.Lock()


def configure(
    dispatcher: NotificationDispatcher | None = None,
    *,
    workers: int = 4,
    inline: bool = False,
) -> NotificationFanout:
    """Install the process-wide fanout, replacing (and draining) any previous one."""
    global _fanout
    with _lock:
        previous = _fanout
        _fanout = NotificationFanout(dispatcher, workers=workers, inline=inline)
    if previous is not None:
        previous.shutdown()
    logger.info(
        "Notification fanout configured (%s, %s)",
        type(_fanout.dispatcher).__name__,
        "inline" if inline else f"{workers} workers",
    )
    return _fanout


def get_fanout() -> NotificationFanout:
    global _fanout
    with _lock:
        if _fanout is None:
            _fanout = NotificationFanout()
        return _fanout


def publish(
    ctx: TenantContext,
    event: ForumEvent,
    rule: RecipientRule,
    body: str,
    metadata: dict[str, Any] | None = None,
    title: str | None = None,
) -> None:
    """Hand one committed event to the fanout.  Never raises."""
    try:
        get_fanout().publish(ctx, event, rule, body, metadata, title)
    except Exception:
        logger.exception("Failed to publish %s notification", event.value)


def shutdown() -> None:
    global _fanout
    with _lock:
        fanout, _fanout = _fanout, None
    if fanout is not None:
        fanout.shutdown()
