"""Policy router - FastAPI endpoints for cancellation policies"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import CancellationPolicy
from .schemas import PolicyCreate, PolicyResponse, PolicyUpdate
from .service import PolicyService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Cancellation Policies"])

POLICY_FIELDS = {
    "name": "name",
    "hoursBefore": "hours_before",
    "penaltyPercent": "penalty_percent",
    "isDefault": "is_default",
}


def get_policy_service(db: Session = Depends(get_db)) -> PolicyService:
    """Dependency injection for PolicyService"""
    return PolicyService(db)


def policy_response(policy: CancellationPolicy) -> PolicyResponse:
    return PolicyResponse(
        id=policy.id,
        businessId=policy.business_id,
        name=policy.name,
        hoursBefore=policy.hours_before,
        penaltyPercent=policy.penalty_percent,
        isDefault=policy.is_default,
        created_at=policy.created_at,
    )


@router.get("/businesses/{business_id}/cancellation-policies", response_model=list[PolicyResponse])
async def list_policies(business_id: int, service: PolicyService = Depends(get_policy_service)):
    return [policy_response(p) for p in service.list_policies(business_id)]


@router.post(
    "/businesses/{business_id}/cancellation-policies",
    response_model=PolicyResponse,
    status_code=201,
)
async def create_policy(
    business_id: int,
    data: PolicyCreate,
    service: PolicyService = Depends(get_policy_service),
):
    """Create a policy; marking it default unsets the previous default"""
    policy = service.create_policy(
        business_id, data.name, data.hoursBefore, data.penaltyPercent, data.isDefault
    )
    return policy_response(policy)


@router.get("/cancellation-policies/{policy_id}", response_model=PolicyResponse)
async def get_policy(policy_id: int, service: PolicyService = Depends(get_policy_service)):
    return policy_response(service.get_policy(policy_id))


@router.patch("/cancellation-policies/{policy_id}", response_model=PolicyResponse)
async def update_policy(
    policy_id: int,
    data: PolicyUpdate,
    service: PolicyService = Depends(get_policy_service),
):
    fields = {POLICY_FIELDS[k]: v for k, v in data.model_dump(exclude_unset=True).items()}
    return policy_response(service.update_policy(policy_id, **fields))


@router.delete("/cancellation-policies/{policy_id}", status_code=204)
async def delete_policy(policy_id: int, service: PolicyService = Depends(get_policy_service)):
    service.delete_policy(policy_id)
