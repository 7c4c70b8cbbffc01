"""
Bulk Enrollment Pricing Service
Volume-discount quotes for employers enrolling several students, plus the
request/approval workflow built on top of them
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.pricing import BULK_BASE_PRICE_PER_STUDENT, DEFAULT_COURSE_ID, CENTS
from app.models.bulk_enrollment import (
    BulkEnrollmentTier,
    BulkEnrollmentRequest,
    BulkStudentEnrollment,
    BulkRequestStatus,
)
from app.utils.database import get_async_session
from app.utils.email_brevo import email_service
from app.utils.errors import (
    PricingError,
    InvalidQuantityError,
    InvalidCourseSelectionError,
    OverlappingTierError,
    InvalidStatusTransitionError,
    PersistenceError,
)

logger = logging.getLogger(__name__)


@dataclass
class StudentEnrollmentData:
    email: str
    first_name: str
    last_name: Optional[str] = None


@dataclass
class BulkPricingCalculation:
    student_count: int
    course_ids: List[str]
    base_price_per_student: Decimal
    total_base_price: Decimal
    applied_tier: Optional[Any]
    discount_percent: Decimal
    discount_amount: Decimal
    final_price: Decimal
    price_per_student: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "studentCount": self.student_count,
            "courseIds": list(self.course_ids),
            "basePricePerStudent": float(self.base_price_per_student),
            "totalBasePrice": float(self.total_base_price),
            "appliedTier": tier_to_dict(self.applied_tier) if self.applied_tier is not None else None,
            "discountPercent": float(self.discount_percent),
            "discountAmount": float(self.discount_amount),
            "finalPrice": float(self.final_price),
            "pricePerStudent": float(self.price_per_student),
        }


def tier_to_dict(tier: Any) -> Dict[str, Any]:
    return {
        "id": str(tier.id) if getattr(tier, "id", None) is not None else None,
        "tierName": tier.tier_name,
        "minStudents": tier.min_students,
        "maxStudents": tier.max_students,
        "discountPercent": float(tier.discount_percent),
    }


def _validate_count(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidQuantityError(value, field_name)
    return value


def find_applicable_tier(tiers: Iterable[BulkEnrollmentTier], student_count: int) -> Optional[BulkEnrollmentTier]:
    """
    Pick the bracket for a student count.

    When brackets overlap, the one with the highest min_students wins so the
    tightest bracket applies regardless of table order. Returns None when no
    bracket covers the count (no discount).
    """
    matches = [tier for tier in tiers if tier.covers(student_count)]
    if not matches:
        return None
    return max(matches, key=lambda tier: tier.min_students)


def calculate_bulk_pricing(
    student_count: int,
    course_ids: Optional[Sequence[str]] = None,
    tiers: Iterable[Any] = (),
) -> BulkPricingCalculation:
    """
    Calculate bulk pricing for a number of students.

    The discount is applied once to the flat total across all courses.
    Money is rounded to cents, and final_price is always exactly
    total_base_price - discount_amount.

    Raises:
        InvalidQuantityError: student_count is not an integer >= 1
        InvalidCourseSelectionError: course_ids is an empty list
    """
    _validate_count(student_count, "studentCount")
    if course_ids is None:
        course_ids = [DEFAULT_COURSE_ID]
    course_ids = list(course_ids)
    if not course_ids:
        raise InvalidCourseSelectionError()

    applied_tier = find_applicable_tier(tiers, student_count)

    base_price_per_student = BULK_BASE_PRICE_PER_STUDENT
    total_base_price = (base_price_per_student * student_count * len(course_ids)).quantize(CENTS)

    discount_percent = Decimal(str(applied_tier.discount_percent)) if applied_tier is not None else Decimal("0")
    discount_amount = (total_base_price * discount_percent / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)
    final_price = total_base_price - discount_amount
    price_per_student = (final_price / student_count).quantize(CENTS, rounding=ROUND_HALF_UP)

    return BulkPricingCalculation(
        student_count=student_count,
        course_ids=course_ids,
        base_price_per_student=base_price_per_student,
        total_base_price=total_base_price,
        applied_tier=applied_tier,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
        final_price=final_price,
        price_per_student=price_per_student,
    )


def _ranges_overlap(min_a: int, max_a: Optional[int], min_b: int, max_b: Optional[int]) -> bool:
    upper_a = max_a if max_a is not None else float("inf")
    upper_b = max_b if max_b is not None else float("inf")
    return min_a <= upper_b and min_b <= upper_a


class BulkPricingService:
    """Bulk enrollment quotes, requests and bracket administration"""

    async def get_bulk_pricing_tiers(self, db: AsyncSession) -> List[BulkEnrollmentTier]:
        """Get all active bulk pricing tiers, smallest bracket first"""
        result = await db.execute(
            select(BulkEnrollmentTier)
            .where(BulkEnrollmentTier.is_active.is_(True))
            .order_by(BulkEnrollmentTier.min_students)
        )
        return list(result.scalars().all())

    async def quote(
        self,
        db: AsyncSession,
        student_count: int,
        course_ids: Optional[Sequence[str]] = None,
    ) -> BulkPricingCalculation:
        """Calculate bulk pricing against the active tier table"""
        tiers = await self.get_bulk_pricing_tiers(db)
        return calculate_bulk_pricing(student_count, course_ids, tiers)

    async def create_bulk_enrollment_request(
        self,
        db: AsyncSession,
        employer_id: str,
        students: Sequence[StudentEnrollmentData],
        course_ids: Optional[Sequence[str]],
        contact_email: str,
        contact_phone: Optional[str] = None,
        notes: Optional[str] = None,
        requested_start_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Create a bulk enrollment request with one enrollment row per student.

        The request and its students are committed together; on a database
        failure nothing is kept and PersistenceError is raised.
        """
        student_count = len(students)
        pricing = await self.quote(db, student_count, course_ids)

        bulk_request = BulkEnrollmentRequest(
            id=uuid.uuid4(),
            employer_id=employer_id,
            student_count=student_count,
            course_ids=pricing.course_ids,
            total_price=pricing.total_base_price,
            discount_percent=pricing.discount_percent,
            final_price=pricing.final_price,
            contact_email=contact_email,
            contact_phone=contact_phone,
            notes=notes,
            requested_start_date=requested_start_date,
            status=BulkRequestStatus.PENDING.value,
        )
        bulk_request.students = [
            BulkStudentEnrollment(
                student_email=student.email,
                student_first_name=student.first_name,
                student_last_name=student.last_name,
            )
            for student in students
        ]

        try:
            db.add(bulk_request)
            await db.commit()
            await db.refresh(bulk_request)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error creating bulk enrollment request for employer {employer_id}: {e}")
            raise PersistenceError("bulk enrollment request creation") from e

        logger.info(
            f"Bulk enrollment request {bulk_request.id} created: employer={employer_id} "
            f"students={student_count} final_price={pricing.final_price}"
        )

        return {
            "bulk_request": bulk_request,
            "pricing": pricing,
            "student_count": student_count,
        }

    async def get_bulk_enrollment_requests(self, db: AsyncSession, employer_id: str) -> List[BulkEnrollmentRequest]:
        """Get bulk enrollment requests for an employer, newest first"""
        result = await db.execute(
            select(BulkEnrollmentRequest)
            .where(BulkEnrollmentRequest.employer_id == employer_id)
            .order_by(BulkEnrollmentRequest.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_bulk_enrollment_request(self, db: AsyncSession, request_id: uuid.UUID) -> Optional[BulkEnrollmentRequest]:
        result = await db.execute(
            select(BulkEnrollmentRequest).where(BulkEnrollmentRequest.id == request_id)
        )
        return result.scalar_one_or_none()

    async def get_bulk_student_enrollments(self, db: AsyncSession, request_id: uuid.UUID) -> List[BulkStudentEnrollment]:
        """Get student enrollments for a bulk request"""
        result = await db.execute(
            select(BulkStudentEnrollment)
            .where(BulkStudentEnrollment.bulk_request_id == request_id)
            .order_by(BulkStudentEnrollment.student_email)
        )
        return list(result.scalars().all())

    async def _transition(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        target: BulkRequestStatus,
        reviewed_by: str,
    ) -> Optional[BulkEnrollmentRequest]:
        bulk_request = await self.get_bulk_enrollment_request(db, request_id)
        if bulk_request is None:
            return None

        if bulk_request.status != BulkRequestStatus.PENDING.value:
            raise InvalidStatusTransitionError(request_id, bulk_request.status, target.value)

        bulk_request.status = target.value
        bulk_request.approved_by = reviewed_by
        bulk_request.approved_at = datetime.now(timezone.utc)

        try:
            await db.commit()
            await db.refresh(bulk_request)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error updating bulk enrollment request {request_id} to {target.value}: {e}")
            raise PersistenceError(f"bulk enrollment request {target.value}") from e

        logger.info(f"Bulk enrollment request {request_id} {target.value} by {reviewed_by}")
        return bulk_request

    async def approve_bulk_enrollment_request(
        self, db: AsyncSession, request_id: uuid.UUID, approved_by: str
    ) -> Optional[BulkEnrollmentRequest]:
        """Approve a pending request; enrollment invites are sent separately"""
        return await self._transition(db, request_id, BulkRequestStatus.APPROVED, approved_by)

    async def reject_bulk_enrollment_request(
        self, db: AsyncSession, request_id: uuid.UUID, rejected_by: str
    ) -> Optional[BulkEnrollmentRequest]:
        """Reject a pending request"""
        return await self._transition(db, request_id, BulkRequestStatus.REJECTED, rejected_by)

    async def send_enrollment_invites(self, request_id: uuid.UUID) -> int:
        """
        Email an enrollment invite to every student of an approved request.
        Runs outside the request cycle with its own session. Returns the number
        of invites sent; students already invited are skipped.
        """
        sent = 0
        async with get_async_session() as db:
            bulk_request = await self.get_bulk_enrollment_request(db, request_id)
            if bulk_request is None or bulk_request.status != BulkRequestStatus.APPROVED.value:
                logger.warning(f"Skipping invites for bulk request {request_id}: not approved")
                return 0

            students = await self.get_bulk_student_enrollments(db, request_id)
            for student in students:
                if student.invite_sent_at is not None:
                    continue
                delivered = await email_service.send_enrollment_invite(
                    to_email=student.student_email,
                    first_name=student.student_first_name,
                    course_ids=bulk_request.course_ids,
                )
                if delivered:
                    student.invite_sent_at = datetime.now(timezone.utc)
                    sent += 1

            await db.commit()

        logger.info(f"Sent {sent} enrollment invites for bulk request {request_id}")
        return sent

    async def create_bulk_tier(
        self,
        db: AsyncSession,
        tier_name: str,
        min_students: int,
        max_students: Optional[int],
        discount_percent: Decimal,
    ) -> BulkEnrollmentTier:
        """Create a bracket after checking it is disjoint from every active bracket"""
        _validate_count(min_students, "minStudents")
        if max_students is not None:
            _validate_count(max_students, "maxStudents")
            if max_students < min_students:
                raise PricingError("maxStudents must be greater than or equal to minStudents")

        discount_percent = Decimal(str(discount_percent))
        if discount_percent < 0 or discount_percent > 100:
            raise PricingError("discountPercent must be between 0 and 100")

        existing = await db.execute(
            select(BulkEnrollmentTier).where(BulkEnrollmentTier.tier_name == tier_name)
        )
        if existing.scalar_one_or_none() is not None:
            raise PricingError(f"Tier name already exists: {tier_name}")

        for tier in await self.get_bulk_pricing_tiers(db):
            if _ranges_overlap(min_students, max_students, tier.min_students, tier.max_students):
                raise OverlappingTierError(tier_name, tier.tier_name)

        tier = BulkEnrollmentTier(
            tier_name=tier_name,
            min_students=min_students,
            max_students=max_students,
            discount_percent=discount_percent,
            is_active=True,
        )

        try:
            db.add(tier)
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error creating bulk tier {tier_name}: {e}")
            raise PersistenceError("bulk tier creation") from e

        await db.refresh(tier)
        logger.info(f"Created bulk tier {tier!r}")
        return tier

    async def deactivate_bulk_tier(self, db: AsyncSession, tier_id: uuid.UUID) -> Optional[BulkEnrollmentTier]:
        result = await db.execute(select(BulkEnrollmentTier).where(BulkEnrollmentTier.id == tier_id))
        tier = result.scalar_one_or_none()
        if tier is None:
            return None

        tier.is_active = False
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error deactivating bulk tier {tier_id}: {e}")
            raise PersistenceError("bulk tier deactivation") from e

        logger.info(f"Deactivated bulk tier {tier.tier_name}")
        return tier


# Global service instance
bulk_pricing_service = BulkPricingService()
