"""
Admin Bulk Enrollment API endpoints
Review of pending employer requests
"""

from fastapi import APIRouter, Depends, HTTPException, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
import logging
import uuid

from app.utils.database import get_db
from app.models.user import User
from app.middleware.auth import require_admin
from app.services.bulk_pricing import bulk_pricing_service
from app.api.bulk_enrollment import bulk_request_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{request_id}/approve")
async def approve_bulk_enrollment_request(
    request_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Approve a pending request and invite its students"""
    bulk_request = await bulk_pricing_service.approve_bulk_enrollment_request(db, request_id, admin.email)
    if not bulk_request:
        raise HTTPException(status_code=404, detail="Bulk enrollment request not found")

    background_tasks.add_task(bulk_pricing_service.send_enrollment_invites, bulk_request.id)

    return {
        "message": "Bulk enrollment request approved successfully",
        "request": bulk_request_to_dict(bulk_request),
    }


@router.post("/{request_id}/reject")
async def reject_bulk_enrollment_request(
    request_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    bulk_request = await bulk_pricing_service.reject_bulk_enrollment_request(db, request_id, admin.email)
    if not bulk_request:
        raise HTTPException(status_code=404, detail="Bulk enrollment request not found")

    return {
        "message": "Bulk enrollment request rejected",
        "request": bulk_request_to_dict(bulk_request),
    }
