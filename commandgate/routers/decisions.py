"""API routes for command decisions."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from commandgate.core.config import settings
from commandgate.core.errors import ConfigurationError, PlatformError
from commandgate.dependencies import get_decision_service
from commandgate.models.domain import Decision, DecisionRecord, PolicyInputs
from commandgate.schemas.decisions import (
    CommandDecisionRequest,
    CommandDecisionResponse,
    DecisionBundleResponse,
)
from commandgate.services.decisions import DecisionService


router = APIRouter(prefix=f"{settings.api_v1_prefix}/decisions", tags=["decisions"])


def _decision_url(decision_id: str, suffix: str = "") -> str:
    return f"{settings.service_base_url}{settings.api_v1_prefix}/decisions/{decision_id}{suffix}"


@router.post("/evaluate", response_model=Decision)
def evaluate_policy(
    inputs: PolicyInputs,
    service: DecisionService = Depends(get_decision_service),
) -> Decision:
    return service.evaluate(inputs)


@router.post("", response_model=CommandDecisionResponse)
def decide_command(
    payload: CommandDecisionRequest,
    service: DecisionService = Depends(get_decision_service),
) -> CommandDecisionResponse:
    try:
        result = service.decide(payload)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except PlatformError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    permission = result.permission
    response = CommandDecisionResponse(
        outcome=result.outcome,
        triggered=result.triggered,
        bypass=result.bypass,
        context_type=result.context.context_type if result.context else None,
        decision_id=result.decision_id,
        decided_at=result.decided_at,
        actor=permission.actor if permission else None,
        actor_type=permission.actor_kind if permission else None,
        permission_status=permission.status if permission else None,
        params=result.params,
        decision=result.decision,
    )
    if result.decision_id:
        response.decision_url = _decision_url(result.decision_id)
        response.bundle_url = _decision_url(result.decision_id, "/bundle")
    return response


@router.get("", response_model=list[DecisionRecord])
def list_decisions(
    repo: str | None = Query(None, description="Optional repository filter, e.g. octo-org/octo-repo."),
    limit: int = Query(50, ge=1, le=500, description="Maximum number of decisions, newest first."),
    service: DecisionService = Depends(get_decision_service),
) -> list[DecisionRecord]:
    return service.list_decisions(repo=repo, limit=limit)


@router.get("/{decision_id}", response_model=DecisionRecord)
def get_decision(
    decision_id: str,
    service: DecisionService = Depends(get_decision_service),
) -> DecisionRecord:
    record = service.get_decision(decision_id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Decision not found")
    return record


@router.get("/{decision_id}/bundle", response_model=DecisionBundleResponse)
def get_decision_bundle(
    decision_id: str,
    service: DecisionService = Depends(get_decision_service),
) -> DecisionBundleResponse:
    bundle = service.get_bundle(decision_id)
    if bundle is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Decision bundle not available")
    return DecisionBundleResponse(decision_id=decision_id, bundle=bundle)
