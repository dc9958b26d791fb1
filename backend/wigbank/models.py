import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Text,
    Float,
    LargeBinary,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base
from .rbac import ActorRole
from .statuses import Status


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, nullable=False)
    name = Column(String)
    # purpose: closed actor role set driving every permission check
    role = Column(String, nullable=False, default=ActorRole.REQUESTER.value)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=_utcnow)

    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def actor_role(self) -> ActorRole:
        return ActorRole(self.role)


class WigRequest(Base):
    __tablename__ = "wig_requests"
    id = Column(Integer, primary_key=True, autoincrement=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(Integer, nullable=False, default=int(Status.PENDING), index=True)
    note = Column(Text)
    evidence = Column(LargeBinary, nullable=False)
    evidence_content_type = Column(String, default="application/octet-stream")
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    requester = relationship("User")
    analyses = relationship(
        "InstitutionAnalysis",
        back_populates="request",
        order_by="InstitutionAnalysis.created_at",
    )
    donations = relationship("Donation", back_populates="request")


class InstitutionAnalysis(Base):
    __tablename__ = "institution_analyses"
    __table_args__ = (
        sa.UniqueConstraint("request_id", "institution_id", name="uq_analysis_request_institution"),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("wig_requests.id"), nullable=False, index=True)
    institution_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(Integer, nullable=False, default=int(Status.PENDING), index=True)
    notes = Column(Text)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    request = relationship("WigRequest", back_populates="analyses")
    institution = relationship("User")


class Wig(Base):
    __tablename__ = "wigs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    institution_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    wig_type = Column(String, nullable=False)
    color = Column(String, nullable=False)
    length_cm = Column(Float, nullable=True)
    size = Column(String(1), nullable=False, default="M")
    available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    institution = relationship("User")
    donation = relationship("Donation", back_populates="wig", uselist=False)


class Donation(Base):
    __tablename__ = "donations"
    id = Column(Integer, primary_key=True, autoincrement=True)
    wig_id = Column(Integer, ForeignKey("wigs.id"), nullable=False, unique=True)
    request_id = Column(Integer, ForeignKey("wig_requests.id"), nullable=False, index=True)
    institution_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    note = Column(Text)
    # status the request held before fulfillment; restored on revert
    request_status_before = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    wig = relationship("Wig", back_populates="donation")
    request = relationship("WigRequest", back_populates="donations")
    institution = relationship("User")


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category = Column(String, nullable=False)  # request, analysis, donation
    title = Column(String, nullable=True)
    message = Column(String, nullable=False)
    is_read = Column(Boolean, default=False)
    meta = Column(JSON, default=dict)  # request_id, analysis_id, donation_id, origin_user_id
    created_at = Column(DateTime, default=_utcnow)
    user = relationship("User", back_populates="notifications")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(Integer)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)
