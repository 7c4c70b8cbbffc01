"""
Bulk enrollment models - volume discount brackets, employer requests and invited students
"""

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Numeric, Text, ForeignKey, JSON, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.utils.database import Base
import uuid
import enum


class BulkRequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BulkEnrollmentTier(Base):
    __tablename__ = "bulk_enrollment_tiers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    tier_name = Column(String(100), unique=True, nullable=False)
    min_students = Column(Integer, nullable=False)
    max_students = Column(Integer)  # NULL = no upper limit
    discount_percent = Column(Numeric(5, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def covers(self, student_count: int) -> bool:
        """True if the student count falls inside this bracket"""
        if student_count < self.min_students:
            return False
        return self.max_students is None or student_count <= self.max_students

    def __repr__(self):
        upper = self.max_students if self.max_students is not None else "+"
        return f"<BulkEnrollmentTier(name='{self.tier_name}', range={self.min_students}-{upper}, discount={self.discount_percent}%)>"


class BulkEnrollmentRequest(Base):
    __tablename__ = "bulk_enrollment_requests"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    employer_id = Column(String(100), nullable=False, index=True)
    student_count = Column(Integer, nullable=False)
    course_ids = Column(JSON, nullable=False)

    # Pricing snapshot
    total_price = Column(Numeric(10, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=False)
    final_price = Column(Numeric(10, 2), nullable=False)

    # Contact
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(50))
    notes = Column(Text)
    requested_start_date = Column(DateTime(timezone=True))

    # Review
    status = Column(String(20), nullable=False, default=BulkRequestStatus.PENDING.value, index=True)
    approved_by = Column(String(100))
    approved_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    students = relationship(
        "BulkStudentEnrollment",
        back_populates="bulk_request",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<BulkEnrollmentRequest(id={self.id}, employer='{self.employer_id}', students={self.student_count}, status='{self.status}')>"


class BulkStudentEnrollment(Base):
    __tablename__ = "bulk_student_enrollments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    bulk_request_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("bulk_enrollment_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_email = Column(String(255), nullable=False)
    student_first_name = Column(String(100), nullable=False)
    student_last_name = Column(String(100))
    invite_sent_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bulk_request = relationship("BulkEnrollmentRequest", back_populates="students")

    def __repr__(self):
        return f"<BulkStudentEnrollment(email='{self.student_email}', request={self.bulk_request_id})>"
