"""Decision types recorded in the append-only request trail."""
from __future__ import annotations

DECISION_SUBMIT = "submit"
DECISION_ACCEPT = "accept"
DECISION_REJECT = "reject"
DECISION_RESCHEDULE = "reschedule"
DECISION_CONFIRM = "confirm"
DECISION_DECLINE = "decline"
DECISION_CANCEL = "cancel"
DECISION_EDIT = "edit"
DECISION_DELETE = "delete"
DECISION_CLAIM = "claim"
DECISION_RELEASE = "release"
DECISION_EXPIRE = "expire"
DECISION_COMPLETE = "complete"
DECISION_OVERRIDE = "override"

VALID_DECISION_TYPES: frozenset[str] = frozenset({
    DECISION_SUBMIT,
    DECISION_ACCEPT,
    DECISION_REJECT,
    DECISION_RESCHEDULE,
    DECISION_CONFIRM,
    DECISION_DECLINE,
    DECISION_CANCEL,
    DECISION_EDIT,
    DECISION_DELETE,
    DECISION_CLAIM,
    DECISION_RELEASE,
    DECISION_EXPIRE,
    DECISION_COMPLETE,
    DECISION_OVERRIDE,
})
