"""
Admin Bulk Tier API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional
import uuid

from app.utils.database import get_db
from app.models.bulk_enrollment import BulkEnrollmentTier
from app.models.user import User
from app.middleware.auth import require_admin
from app.services.bulk_pricing import bulk_pricing_service, tier_to_dict

router = APIRouter()


class BulkTierCreateRequest(BaseModel):
    tierName: str = Field(min_length=1, max_length=100)
    minStudents: int
    maxStudents: Optional[int] = None
    discountPercent: Decimal


@router.get("")
async def list_bulk_tiers(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """All brackets, including deactivated ones"""
    result = await db.execute(select(BulkEnrollmentTier).order_by(BulkEnrollmentTier.min_students))
    tiers = result.scalars().all()

    return {
        "tiers": [
            {**tier_to_dict(tier), "isActive": tier.is_active}
            for tier in tiers
        ]
    }


@router.post("", status_code=201)
async def create_bulk_tier(
    tier_request: BulkTierCreateRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a bracket; it must not overlap any active bracket"""
    tier = await bulk_pricing_service.create_bulk_tier(
        db,
        tier_name=tier_request.tierName,
        min_students=tier_request.minStudents,
        max_students=tier_request.maxStudents,
        discount_percent=tier_request.discountPercent,
    )
    return {"tier": tier_to_dict(tier)}


@router.post("/{tier_id}/deactivate")
async def deactivate_bulk_tier(
    tier_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    tier = await bulk_pricing_service.deactivate_bulk_tier(db, tier_id)
    if not tier:
        raise HTTPException(status_code=404, detail="Bulk tier not found")

    return {"tier": {**tier_to_dict(tier), "isActive": tier.is_active}}
