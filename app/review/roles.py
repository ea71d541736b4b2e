"""Role catalogue and action → capability mappings.

Roles:
- system-admin: ceiling tier, may act on any request
- operational-admin: sees every request; reviews coordinator requests
- coordinator: reviews stakeholder requests in covered locations
- stakeholder: submits requests and answers reschedules
- basic-user: submits only
"""
from __future__ import annotations

from app.core.constants import (
    ACTION_ACCEPT,
    ACTION_CANCEL,
    ACTION_CONFIRM,
    ACTION_DECLINE,
    ACTION_DELETE,
    ACTION_EDIT,
    ACTION_REJECT,
    ACTION_RESCHEDULE,
    ACTION_VIEW,
    AUTHORITY_BASIC_USER,
    AUTHORITY_COORDINATOR,
    AUTHORITY_OPERATIONAL_ADMIN,
    AUTHORITY_STAKEHOLDER,
    AUTHORITY_SYSTEM_ADMIN,
)

ROLE_AUTHORITY: dict[str, int] = {
    "system-admin": AUTHORITY_SYSTEM_ADMIN,
    "operational-admin": AUTHORITY_OPERATIONAL_ADMIN,
    "coordinator": AUTHORITY_COORDINATOR,
    "stakeholder": AUTHORITY_STAKEHOLDER,
    "basic-user": AUTHORITY_BASIC_USER,
}

VALID_ROLES: frozenset[str] = frozenset(ROLE_AUTHORITY)

RESOURCE_REQUEST = "request"
RESOURCE_EVENT = "event"

# action → (resource, verbs); any listed verb grants the action.  The
# first verb is the primary grant, the rest are alternates for actors who
# only hold the weaker verb.
ACTION_CAPABILITIES: dict[str, tuple[str, tuple[str, ...]]] = {
    ACTION_VIEW: (RESOURCE_REQUEST, ("read",)),
    ACTION_ACCEPT: (RESOURCE_REQUEST, ("review",)),
    ACTION_REJECT: (RESOURCE_REQUEST, ("review", "decline")),
    ACTION_CONFIRM: (RESOURCE_REQUEST, ("confirm",)),
    ACTION_DECLINE: (RESOURCE_REQUEST, ("decline", "confirm")),
    ACTION_RESCHEDULE: (RESOURCE_REQUEST, ("reschedule", "review")),
    ACTION_CANCEL: (RESOURCE_REQUEST, ("cancel",)),
    ACTION_DELETE: (RESOURCE_REQUEST, ("delete",)),
    ACTION_EDIT: (RESOURCE_REQUEST, ("update",)),
}

# Edits to an approved request change the published work item, so they
# are gated on the work item's capability instead of the request's.
APPROVED_EDIT_CAPABILITY: tuple[str, tuple[str, ...]] = (RESOURCE_EVENT, ("update",))


def authority_for_role(role_code: str) -> int:
    """Return the fixed authority for *role_code*."""
    if role_code not in ROLE_AUTHORITY:
        raise ValueError(
            f"Unknown role {role_code!r}; must be one of {sorted(VALID_ROLES)}"
        )
    return ROLE_AUTHORITY[role_code]


def required_capability(action: str) -> tuple[str, tuple[str, ...]]:
    """Return ``(resource, verbs)`` that authorize *action*."""
    if action not in ACTION_CAPABILITIES:
        raise ValueError(
            f"Unknown action {action!r}; "
            f"must be one of {sorted(ACTION_CAPABILITIES)}"
        )
    return ACTION_CAPABILITIES[action]
