"""
Bulk Enrollment API endpoints
Volume-discount quotes and employer enrollment requests
"""

from fastapi import APIRouter, Depends, HTTPException, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
import logging
import uuid

from app.utils.database import get_db
from app.utils.email_brevo import email_service
from app.models.bulk_enrollment import BulkEnrollmentRequest, BulkStudentEnrollment
from app.services.bulk_pricing import bulk_pricing_service, StudentEnrollmentData, tier_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()


# Pydantic models for request/response
class BulkQuoteRequest(BaseModel):
    studentCount: int
    courseIds: Optional[List[str]] = None


class StudentEntry(BaseModel):
    email: EmailStr
    firstName: str = Field(min_length=1)
    lastName: Optional[str] = None


class BulkEnrollmentCreateRequest(BaseModel):
    employerId: str = Field(min_length=1)
    studentEmails: List[StudentEntry]
    courseIds: Optional[List[str]] = None
    contactEmail: EmailStr
    contactPhone: Optional[str] = None
    notes: Optional[str] = None
    requestedStartDate: Optional[datetime] = None


def bulk_request_to_dict(bulk_request: BulkEnrollmentRequest) -> Dict[str, Any]:
    return {
        "id": str(bulk_request.id),
        "employerId": bulk_request.employer_id,
        "studentCount": bulk_request.student_count,
        "courseIds": bulk_request.course_ids,
        "totalPrice": float(bulk_request.total_price),
        "discountPercent": float(bulk_request.discount_percent),
        "finalPrice": float(bulk_request.final_price),
        "contactEmail": bulk_request.contact_email,
        "contactPhone": bulk_request.contact_phone,
        "notes": bulk_request.notes,
        "requestedStartDate": bulk_request.requested_start_date.isoformat() if bulk_request.requested_start_date else None,
        "status": bulk_request.status,
        "approvedBy": bulk_request.approved_by,
        "approvedAt": bulk_request.approved_at.isoformat() if bulk_request.approved_at else None,
        "createdAt": bulk_request.created_at.isoformat() if bulk_request.created_at else None,
    }


def student_to_dict(student: BulkStudentEnrollment) -> Dict[str, Any]:
    return {
        "id": str(student.id),
        "bulkRequestId": str(student.bulk_request_id),
        "email": student.student_email,
        "firstName": student.student_first_name,
        "lastName": student.student_last_name,
        "inviteSentAt": student.invite_sent_at.isoformat() if student.invite_sent_at else None,
    }


@router.get("/bulk-pricing/tiers")
async def get_bulk_pricing_tiers(db: AsyncSession = Depends(get_db)):
    """Active volume-discount brackets"""
    tiers = await bulk_pricing_service.get_bulk_pricing_tiers(db)
    return {"tiers": [tier_to_dict(tier) for tier in tiers]}


@router.post("/bulk-pricing/calculate")
async def calculate_bulk_pricing(
    quote_request: BulkQuoteRequest,
    db: AsyncSession = Depends(get_db)
):
    """Quote a bulk enrollment without creating a request"""
    try:
        pricing = await bulk_pricing_service.quote(db, quote_request.studentCount, quote_request.courseIds)
    except SQLAlchemyError as e:
        logger.error(f"Error calculating bulk pricing: {e}")
        raise HTTPException(status_code=500, detail="Could not calculate pricing")

    return {"pricing": pricing.to_dict()}


@router.post("/bulk-enrollment/request", status_code=201)
async def create_bulk_enrollment_request(
    enrollment_request: BulkEnrollmentCreateRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db)
):
    """Create a pending bulk enrollment request with one row per invited student"""
    students = [
        StudentEnrollmentData(
            email=student.email,
            first_name=student.firstName,
            last_name=student.lastName,
        )
        for student in enrollment_request.studentEmails
    ]

    result = await bulk_pricing_service.create_bulk_enrollment_request(
        db,
        employer_id=enrollment_request.employerId,
        students=students,
        course_ids=enrollment_request.courseIds,
        contact_email=enrollment_request.contactEmail,
        contact_phone=enrollment_request.contactPhone,
        notes=enrollment_request.notes,
        requested_start_date=enrollment_request.requestedStartDate,
    )

    pricing = result["pricing"]

    # Confirmation goes out after the commit; a failed send never undoes the request
    background_tasks.add_task(
        email_service.send_bulk_enrollment_received,
        enrollment_request.contactEmail,
        result["student_count"],
        f"{pricing.final_price:.2f}",
        f"{pricing.discount_percent:.2f}",
    )

    return {
        "message": "Bulk enrollment request created successfully! Check your email for follow-up information.",
        "bulkRequest": bulk_request_to_dict(result["bulk_request"]),
        "pricing": pricing.to_dict(),
        "studentCount": result["student_count"],
    }


@router.get("/bulk-enrollment/requests/{employer_id}")
async def get_bulk_enrollment_requests(employer_id: str, db: AsyncSession = Depends(get_db)):
    requests = await bulk_pricing_service.get_bulk_enrollment_requests(db, employer_id)
    return {"requests": [bulk_request_to_dict(r) for r in requests]}


@router.get("/bulk-enrollment/{request_id}/students")
async def get_bulk_student_enrollments(request_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    students = await bulk_pricing_service.get_bulk_student_enrollments(db, request_id)
    return {"students": [student_to_dict(s) for s in students]}
