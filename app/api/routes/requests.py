"""Review request routes.

Thin adapter over ``WorkflowEngine``: no rules live here.  Error mapping:

    RequestInputError    → 422
    RequestNotFoundError → 404
    ConflictError        → 409
    CollaboratorError    → 503
    denial               → 403 with the reason in the body

Contact details are masked in every response.
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.api.deps import get_workflow_engine
from app.core.constants import STATUS_LABELS
from app.core.errors import CollaboratorError, ConflictError, RequestInputError, RequestNotFoundError
from app.review.entities import ActionResult
from app.review.workflow import WorkflowEngine

router = APIRouter(prefix="/requests", tags=["requests"])

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class SubmitBody(BaseModel):
    requester_id: str
    request: dict[str, Any]
    location: dict[str, Any]


class ActionBody(BaseModel):
    actor_id: str
    action: str
    payload: dict[str, Any] | None = None


class ActorBody(BaseModel):
    actor_id: str


class ReviewerBody(BaseModel):
    actor_id: str
    reviewer_id: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _mask_email(email: str | None) -> str | None:
    return "***@***.***" if email else None


def _mask_phone(phone: str | None) -> str | None:
    if not phone:
        return None
    digits = "".join(c for c in phone if c.isdigit())
    return f"***-***-{digits[-4:]}" if len(digits) >= 4 else "***-***-****"


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _serialize_request(request) -> dict[str, Any]:
    details = dict(request.details or {})
    if "contact_email" in details:
        details["contact_email"] = _mask_email(details["contact_email"])
    if "contact_phone" in details:
        details["contact_phone"] = _mask_phone(details["contact_phone"])
    return {
        "request_id": str(request.request_id),
        "version": request.version,
        "request_type": request.request_type,
        "title": request.title,
        "details": details,
        "scheduled_date": _iso(request.scheduled_date),
        "start_time": request.start_time,
        "end_time": request.end_time,
        "location_id": request.location_id,
        "organization_type": request.organization_type,
        "status": request.status,
        "status_label": STATUS_LABELS.get(request.status, request.status),
        "requester": {
            "user_id": request.requester_id,
            "role": request.requester_role,
            "authority": request.requester_authority,
        },
        "reviewer": {
            "user_id": request.reviewer_id,
            "role": request.reviewer_role,
            "assignment_rule": request.reviewer_assignment_rule,
            "auto_assigned": request.reviewer_auto_assigned,
            "overridden_by": request.reviewer_overridden_by,
        },
        "eligible_reviewers": [e.user_id for e in request.eligible_reviewers],
        "claimed_by": request.claimed_by_id,
        "claim_expires_at": _iso(request.claim_expires_at),
        "reschedule_proposal": request.reschedule_proposal,
        "active_responder": {
            "side": request.active_responder_side,
            "user_id": request.active_responder_id,
        },
        "last_action": request.last_action,
        "derived_item_ref": request.derived_item_ref,
    }


def _serialize_result(result: ActionResult) -> dict[str, Any]:
    return {
        "allowed": result.allowed,
        "reason": result.reason,
        "degraded": result.degraded,
        "warnings": result.warnings,
        "derived_item_ref": result.derived_item_ref,
        "request": _serialize_request(result.request),
    }


def _call(fn: Callable[..., T], *args, **kwargs) -> T:
    """Run an engine call, translating engine errors to HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except RequestNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except RequestInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except CollaboratorError as exc:
        raise HTTPException(status_code=503, detail=str(exc))


def _result_response(result: ActionResult):
    body = _serialize_result(result)
    if not result.allowed:
        return JSONResponse(status_code=403, content=body)
    return body


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("", status_code=201, summary="Submit a request for review")
def submit_request(body: SubmitBody, wf: WorkflowEngine = Depends(get_workflow_engine)):
    requester = _call(wf.capture_actor, body.requester_id)
    request = _call(wf.submit, requester, body.request, body.location)
    return _serialize_request(request)


@router.get("", summary="Requests visible to an actor")
def list_requests(
    actor_id: str = Query(...),
    status: str | None = Query(default=None),
    wf: WorkflowEngine = Depends(get_workflow_engine),
):
    requests = _call(wf.list_visible_requests, actor_id, status)
    return [_serialize_request(r) for r in requests]


@router.get("/{request_id}", summary="Fetch one request")
def get_request(
    request_id: str,
    actor_id: str = Query(...),
    wf: WorkflowEngine = Depends(get_workflow_engine),
):
    result = _call(wf.view_request, actor_id, request_id)
    if not result.allowed:
        raise HTTPException(status_code=403, detail=result.reason)
    return _serialize_request(result.request)


@router.post("/{request_id}/actions", summary="Perform an action on a request")
def perform_action(
    request_id: str,
    body: ActionBody,
    wf: WorkflowEngine = Depends(get_workflow_engine),
):
    result = _call(wf.act, body.actor_id, request_id, body.action, body.payload)
    return _result_response(result)


@router.get("/{request_id}/actions", summary="Actions available to an actor")
def available_actions(
    request_id: str,
    actor_id: str = Query(...),
    wf: WorkflowEngine = Depends(get_workflow_engine),
):
    actions = _call(wf.get_available_actions, actor_id, request_id)
    return {"request_id": request_id, "actor_id": actor_id, "actions": actions}


@router.post("/{request_id}/release", summary="Release a claimed request")
def release_claim(
    request_id: str,
    body: ActorBody,
    wf: WorkflowEngine = Depends(get_workflow_engine),
):
    result = _call(wf.release_claim, body.actor_id, request_id)
    return _result_response(result)


@router.post("/{request_id}/claim", summary="Claim a request")
def claim_request(
    request_id: str,
    body: ActorBody,
    wf: WorkflowEngine = Depends(get_workflow_engine),
):
    result = _call(wf.claim_request, body.actor_id, request_id)
    return _result_response(result)


@router.put("/{request_id}/reviewer", summary="Override the assigned reviewer")
def override_reviewer(
    request_id: str,
    body: ReviewerBody,
    wf: WorkflowEngine = Depends(get_workflow_engine),
):
    result = _call(wf.override_reviewer, body.actor_id, request_id, body.reviewer_id)
    return _result_response(result)
