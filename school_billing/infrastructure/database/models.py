"""SQLAlchemy ORM models for tenants, enrollments and the monthly charge ledger"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    DateTime,
    Integer,
    ForeignKey,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Tenant(Base):
    """School organisation using the platform"""

    __tablename__ = "tenant"

    id = Column(Text, primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="ACTIVE")
    billing_day = Column(Integer, nullable=True)
    fee_due_day = Column(Integer, nullable=True)  # Legacy alias of billing_day
    accepts_card = Column(Boolean, nullable=False, default=False)
    payment_account_id = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    students = relationship("Student", back_populates="tenant")
    classes = relationship("SchoolClass", back_populates="tenant")


class Guardian(Base):
    """Parent billed on behalf of their students"""

    __tablename__ = "guardian"

    id = Column(Text, primary_key=True, default=_new_id)
    name = Column(Text, nullable=True)
    email = Column(Text, nullable=False)


class Student(Base):
    __tablename__ = "student"

    id = Column(Text, primary_key=True, default=_new_id)
    tenant_id = Column(Text, ForeignKey("tenant.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    payment_method = Column(String(32), nullable=True)
    primary_guardian_id = Column(Text, ForeignKey("guardian.id"), nullable=True)

    tenant = relationship("Tenant", back_populates="students")
    primary_guardian = relationship("Guardian")
    enrollments = relationship("ClassEnrollment", back_populates="student", cascade="all, delete-orphan")


class SchoolClass(Base):
    __tablename__ = "school_class"

    id = Column(Text, primary_key=True, default=_new_id)
    tenant_id = Column(Text, ForeignKey("tenant.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    monthly_fee_minor = Column(BigInteger, nullable=True)

    tenant = relationship("Tenant", back_populates="classes")


class ClassEnrollment(Base):
    __tablename__ = "class_enrollment"
    __table_args__ = (UniqueConstraint("student_id", "class_id", name="uq_enrollment_student_class"),)

    id = Column(Text, primary_key=True, default=_new_id)
    student_id = Column(Text, ForeignKey("student.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(Text, ForeignKey("school_class.id", ondelete="CASCADE"), nullable=False)

    student = relationship("Student", back_populates="enrollments")
    school_class = relationship("SchoolClass")


class GuardianBillingProfile(Base):
    """Autopay settings and stored card for a guardian within one tenant"""

    __tablename__ = "guardian_billing_profile"
    __table_args__ = (UniqueConstraint("tenant_id", "guardian_id", name="uq_billing_profile_tenant_guardian"),)

    id = Column(Text, primary_key=True, default=_new_id)
    tenant_id = Column(Text, ForeignKey("tenant.id"), nullable=False)
    guardian_id = Column(Text, ForeignKey("guardian.id"), nullable=False)
    autopay_enabled = Column(Boolean, nullable=False, default=False)
    provider_customer_id = Column(Text, nullable=True)
    default_payment_method_id = Column(Text, nullable=True)


class MonthlyChargeEntry(Base):
    """One billing attempt lifecycle per (student, class, month)"""

    __tablename__ = "monthly_charge_entry"
    __table_args__ = (
        UniqueConstraint("student_id", "class_id", "month", name="uq_charge_student_class_month"),
    )

    id = Column(Text, primary_key=True, default=_new_id)
    tenant_id = Column(Text, ForeignKey("tenant.id"), nullable=False, index=True)
    student_id = Column(Text, ForeignKey("student.id"), nullable=False)
    class_id = Column(Text, ForeignKey("school_class.id"), nullable=False)
    month = Column(String(7), nullable=False, index=True)  # YYYY-MM
    amount_minor = Column(BigInteger, nullable=False)
    method = Column(String(32), nullable=False, default="CARD")
    status = Column(String(16), nullable=False, default="PENDING")
    attempts = Column(Integer, nullable=False, default=0)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    reference = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
