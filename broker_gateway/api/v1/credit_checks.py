"""/v1/credit-checks - submit, list, inspect and delete credit checks"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from broker_gateway.api.v1.schemas import (
    CreditCheckDetailResponse,
    CreditCheckListResponse,
    CreditCheckResponse,
    CreditCheckStatsResponse,
    CreditCheckSubmitRequest,
    RiskClassificationSchema,
)
from broker_gateway.api.dependencies import get_identity, get_lifecycle_manager, get_request_id
from broker_gateway.domain.exceptions import NotFoundError, ValidationError
from broker_gateway.domain.models import CreditCheckFilters, CreditCheckStatus, Identity
from broker_gateway.domain.risk_analysis import summarize_credit_check
from broker_gateway.services.credit_checks import RequestLifecycleManager

router = APIRouter()


@router.post("/credit-checks", response_model=CreditCheckResponse, status_code=202)
async def submit_credit_check(
    request_body: CreditCheckSubmitRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    manager: RequestLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Submit a credit check for a client on behalf of the calling broker.

    Responds as soon as the pending row exists; the outcome arrives later as a
    notification.
    """
    request_id = get_request_id(request)
    try:
        credit_check = await manager.submit(
            client_id=request_body.client_id,
            broker_id=identity.user_id,
            profile_id=request_body.profile_id,
        )
    except ValidationError as e:
        logging.warning(f"Invalid credit check submission: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id}, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return CreditCheckResponse.from_domain(credit_check)


@router.get("/credit-checks", response_model=CreditCheckListResponse)
def list_credit_checks(
    status: Optional[CreditCheckStatus] = Query(None, description="Filter by status"),
    client_id: Optional[str] = Query(None, description="Filter by client"),
    limit: int = Query(50, gt=0, le=500),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_identity),
    manager: RequestLifecycleManager = Depends(get_lifecycle_manager),
):
    """List the calling broker's credit checks, newest first"""
    filters = CreditCheckFilters(status=status, client_id=client_id, limit=limit, offset=offset)
    credit_checks = manager.list(identity.user_id, filters)
    return CreditCheckListResponse(
        broker_id=identity.user_id,
        credit_checks=[CreditCheckResponse.from_domain(c) for c in credit_checks],
    )


@router.get("/credit-checks/stats", response_model=CreditCheckStatsResponse)
def get_credit_check_stats(
    nominal_limit: Optional[float] = Query(None, ge=0),
    identity: Identity = Depends(get_identity),
    manager: RequestLifecycleManager = Depends(get_lifecycle_manager),
):
    """Aggregate counts and risk distribution over the calling broker's credit checks"""
    return CreditCheckStatsResponse.from_domain(manager.stats(identity.user_id, nominal_limit))


@router.get("/credit-checks/{credit_check_id}", response_model=CreditCheckDetailResponse)
def get_credit_check(
    credit_check_id: int,
    nominal_limit: Optional[float] = Query(None, ge=0, description="Operative limit the recommendation is capped from"),
    identity: Identity = Depends(get_identity),
    manager: RequestLifecycleManager = Depends(get_lifecycle_manager),
):
    """
    Retrieve a credit check with its risk classification.

    The classification is computed fresh on every read and is absent while the
    check is pending.
    """
    try:
        credit_check, classification = manager.analyze(credit_check_id, nominal_limit)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Credit check not found")

    if credit_check.broker_id != identity.user_id:
        raise HTTPException(status_code=404, detail="Credit check not found")

    return CreditCheckDetailResponse(
        credit_check=CreditCheckResponse.from_domain(credit_check),
        analysis=RiskClassificationSchema.from_domain(classification) if classification else None,
        summary=summarize_credit_check(credit_check, classification),
    )


@router.delete("/credit-checks/{credit_check_id}", status_code=204)
def delete_credit_check(
    credit_check_id: int,
    identity: Identity = Depends(get_identity),
    manager: RequestLifecycleManager = Depends(get_lifecycle_manager),
):
    """Delete one of the calling broker's credit checks"""
    try:
        manager.delete(credit_check_id, identity.user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Credit check not found")
    return Response(status_code=204)
