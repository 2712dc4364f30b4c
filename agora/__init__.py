"""
Agora — A Multi-Tenant Discussion Forum Engine
================================================
Threaded discussions, nested replies, likes, pins, mentions and moderation
reports for organizations that each own an isolated data store.  Staff
accounts live in one central store; member accounts live in each tenant
store.  Agora keeps derived counters and per-user read state consistent
across both.

Package layout::

    agora/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Roles, content enums, limits
    ├── errors.py          # NotFound / Forbidden / Conflict / Validation / Internal
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helpers
    │   ├── models.py      # Central + tenant ORM models
    │   └── tenants.py     # Tenant key → TenantContext router
    ├── engine/
    │   ├── events.py      # Actor, UserRef, notification event types
    │   ├── mentions.py    # Pure mention token extraction / formatting
    │   ├── pagination.py  # Page math shared by every listing
    │   └── policy.py      # Role gating rules
    ├── services/
    │   ├── identity_service.py     # Two-store identity resolver
    │   ├── mention_service.py      # Mention resolution + persistence
    │   ├── counter_service.py      # Atomic counters + reconciliation
    │   ├── reply_service.py        # Reply tree + cascading soft delete
    │   ├── discussion_service.py   # Discussion lifecycle
    │   ├── moderation_service.py   # Reports + review
    │   ├── engagement_service.py   # Likes, pins, views / unread
    │   ├── attachment_service.py   # Attachment metadata
    │   ├── notification_service.py # Fire-and-forget fanout
    │   └── query_service.py        # Filtered, paginated read views
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT → Actor, tenant routing
        └── routes/        # REST endpoints
"""

__version__ = "0.1.0"
