import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Enum,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


# -------------------------
# Roles
# -------------------------
class UserRole(PyEnum):
    patient = "patient"
    doctor = "doctor"
    admin = "admin"


# -------------------------
# Profiles
# -------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)

    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    role = Column(Enum(UserRole, name="user_role_enum"), nullable=False, default=UserRole.patient)

    # Doctors need admin approval before they can see patient data
    is_approved = Column(Boolean, default=False, nullable=False)
    is_suspended = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


# -------------------------
# Questions (admin-managed, DB-driven)
# -------------------------
class Question(Base):
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=_uuid)
    question = Column(Text, nullable=False)
    question_type = Column(String(16), nullable=False, default="select")   # select / text / number
    page_category = Column(String(32), nullable=False, default="medical_history")
    display_order = Column(Integer, nullable=False, default=0)
    required = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    tooltip = Column(Text, nullable=True)

    # Child questions are only shown while the parent has this answer
    conditional_parent_id = Column(String(36), ForeignKey("questions.id", ondelete="SET NULL"), nullable=True)
    conditional_required_value = Column(String(64), nullable=True)

    created_by = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    options = relationship(
        "DropdownOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="DropdownOption.display_order",
    )

    __table_args__ = (
        Index("ix_questions_page_order", "page_category", "display_order"),
    )


class DropdownOption(Base):
    __tablename__ = "dropdown_options"

    id = Column(String(36), primary_key=True, default=_uuid)
    question_id = Column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    option_value = Column(String(128), nullable=False)
    option_text = Column(String(255), nullable=False)
    score = Column(Integer, nullable=True, default=0)
    display_order = Column(Integer, nullable=False, default=0)
    tooltip = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    question = relationship("Question", back_populates="options")

    __table_args__ = (
        UniqueConstraint("question_id", "option_value", name="uq_dropdown_options_question_value"),
    )


# -------------------------
# Submitted questionnaires
# -------------------------
class PatientQuestionnaire(Base):
    __tablename__ = "patient_questionnaires"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=True, index=True)
    doctor_id = Column(String(36), nullable=True, index=True)

    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    age = Column(String(16), nullable=False)
    race = Column(String(32), nullable=False)

    family_glaucoma = Column(Boolean, nullable=False, default=False)
    ocular_steroid = Column(Boolean, nullable=False, default=False)
    steroid_type = Column(String(64), nullable=True)
    intravitreal = Column(Boolean, nullable=False, default=False)
    intravitreal_type = Column(String(64), nullable=True)
    systemic_steroid = Column(Boolean, nullable=False, default=False)
    systemic_steroid_type = Column(String(64), nullable=True)
    iop_baseline = Column(Boolean, nullable=False, default=False)
    vertical_asymmetry = Column(Boolean, nullable=False, default=False)
    vertical_ratio = Column(Boolean, nullable=False, default=False)

    total_score = Column(Integer, nullable=False, default=0)
    risk_level = Column(String(16), nullable=False)   # "Low" / "Moderate" / "High"

    # answers to DB-driven questions, keyed by question id
    answers_metadata = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# -------------------------
# Advice per risk level
# -------------------------
class RiskAssessmentAdvice(Base):
    __tablename__ = "risk_assessment_advice"

    id = Column(Integer, primary_key=True, autoincrement=True)
    risk_level = Column(String(16), nullable=False, unique=True)
    min_score = Column(Integer, nullable=False)
    max_score = Column(Integer, nullable=False)
    advice = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# -------------------------
# Specialist consultations
# -------------------------
class SpecialistQuestion(Base):
    __tablename__ = "specialist_questions"

    id = Column(String(36), primary_key=True, default=_uuid)
    question = Column(Text, nullable=False)
    question_type = Column(String(16), nullable=False, default="text")   # text / multiline / select / number
    display_order = Column(Integer, nullable=False, default=0)
    required = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # plain list of choices, only kept for select questions
    dropdown_options = Column(JSON, nullable=True)
    created_by = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ConsultationLink(Base):
    __tablename__ = "specialist_consultation_links"

    id = Column(String(36), primary_key=True, default=_uuid)
    patient_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    consultation_token = Column(String(64), nullable=False, unique=True, index=True)
    created_by_doctor_id = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    is_used = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    consultation = relationship("SpecialistConsultation", back_populates="link", uselist=False)


class SpecialistConsultation(Base):
    __tablename__ = "specialist_consultations"

    id = Column(String(36), primary_key=True, default=_uuid)
    consultation_link_id = Column(
        String(36), ForeignKey("specialist_consultation_links.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    specialist_name = Column(String(255), nullable=False)
    specialist_credentials = Column(String(255), nullable=False)
    specialty = Column(String(255), nullable=False)
    consultation_notes = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    link = relationship("ConsultationLink", back_populates="consultation")
    responses = relationship(
        "SpecialistResponse",
        back_populates="consultation",
        cascade="all, delete-orphan",
        order_by="SpecialistResponse.created_at",
    )


class SpecialistResponse(Base):
    __tablename__ = "specialist_responses"

    id = Column(String(36), primary_key=True, default=_uuid)
    consultation_id = Column(String(36), ForeignKey("specialist_consultations.id", ondelete="CASCADE"),
                             nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(String(36), ForeignKey("specialist_questions.id", ondelete="CASCADE"), nullable=False)
    response = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    consultation = relationship("SpecialistConsultation", back_populates="responses")
    question = relationship("SpecialistQuestion")
