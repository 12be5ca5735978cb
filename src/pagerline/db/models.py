from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from pagerline.domain.models import utcnow


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class UserModel(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    workspace_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(320))
    display_name: Mapped[str | None] = mapped_column(String(255))
    phone_number: Mapped[str | None] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class RotationModel(Base):
    __tablename__ = "oncall_rotations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    workspace_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    description: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    layers: Mapped[list[LayerModel]] = relationship(
        back_populates="rotation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="LayerModel.order",
    )
    overrides: Mapped[list[OverrideModel]] = relationship(
        back_populates="rotation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="OverrideModel.starts_at.desc()",
    )


class LayerModel(Base):
    __tablename__ = "oncall_layers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    rotation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("oncall_rotations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str | None] = mapped_column(String(255))
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    handoff_interval_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=168)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    restrictions: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    is_shadow: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    rotation: Mapped[RotationModel] = relationship(back_populates="layers")
    participants: Mapped[list[ParticipantModel]] = relationship(
        back_populates="layer",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="ParticipantModel.position",
    )

    __table_args__ = (Index("idx_oncall_layers_rotation_order", "rotation_id", "order"),)


class ParticipantModel(Base):
    __tablename__ = "oncall_participants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    layer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("oncall_layers.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    layer: Mapped[LayerModel] = relationship(back_populates="participants")
    user: Mapped[UserModel] = relationship(lazy="joined")

    __table_args__ = (Index("idx_oncall_participants_layer_position", "layer_id", "position"),)


class OverrideModel(Base):
    __tablename__ = "oncall_overrides"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    rotation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("oncall_rotations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    rotation: Mapped[RotationModel] = relationship(back_populates="overrides")
    user: Mapped[UserModel] = relationship(lazy="joined")

    __table_args__ = (
        Index("idx_oncall_overrides_rotation_window", "rotation_id", "starts_at", "ends_at"),
    )


class AlertGroupModel(Base):
    """Read side of grouped alerts; ingestion owns the writes."""

    __tablename__ = "alert_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    workspace_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    severity: Mapped[str] = mapped_column(String(50), nullable=False, default="MEDIUM")
    environment: Mapped[str] = mapped_column(String(100), nullable=False, default="production")
    project: Mapped[str] = mapped_column(String(255), nullable=False, default="default")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="OPEN", index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class PagingPolicyModel(Base):
    __tablename__ = "paging_policies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    workspace_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    rotation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("oncall_rotations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    steps: Mapped[list[PagingStepModel]] = relationship(
        back_populates="policy",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="PagingStepModel.order",
    )


class PagingStepModel(Base):
    __tablename__ = "paging_steps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    policy_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("paging_policies.id", ondelete="CASCADE"), nullable=False
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    channels: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    delay_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repeat_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repeat_interval_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    policy: Mapped[PagingPolicyModel] = relationship(back_populates="steps")

    __table_args__ = (UniqueConstraint("policy_id", "order", name="uq_paging_step_order"),)


class PagingAttemptModel(Base):
    """Insert-only audit of channel dispatches."""

    __tablename__ = "paging_attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    policy_id: Mapped[str] = mapped_column(String(36), nullable=False)
    alert_group_id: Mapped[str] = mapped_column(String(36), nullable=False)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    target_user_id: Mapped[str | None] = mapped_column(String(36))
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text)
    ack_token: Mapped[str | None] = mapped_column(String(16), index=True)
    ack_source: Mapped[str | None] = mapped_column(String(50))
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_paging_attempts_alert_group", "alert_group_id", "completed_at"),
        Index("idx_paging_attempts_policy_step", "policy_id", "step_order", "attempt_number"),
    )
