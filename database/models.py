"""
SQLAlchemy ORM models for users, provider account links and the
admin-managed third-party auth configuration, plus popup login requests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    user_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(128))
    password_hash = Column(String(255), nullable=False, default="")
    access_level = Column(String(16), nullable=False, default="user")  # "user" | "system_admin"
    auth_method = Column(String(32), nullable=False, default="password")  # "password" | "google"
    picture = Column(Text)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    account_links = relationship("AccountLink", back_populates="user", cascade="all, delete-orphan")


class AccountLink(Base):
    __tablename__ = "account_links"
    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_account_links_provider_identity"),
        UniqueConstraint("user_id", "provider", name="uq_account_links_user_provider"),
    )

    link_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    provider = Column(String(32), nullable=False)
    provider_user_id = Column(String(255), nullable=False)
    email = Column(String(255))
    name = Column(String(255))
    avatar_url = Column(Text)
    profile = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="account_links")


class AuthProviderConfig(Base):
    __tablename__ = "third_party_auth_config"

    provider_type = Column(String(32), primary_key=True)
    enabled = Column(Boolean, nullable=False, default=False)
    client_id = Column(String(255), nullable=False, default="")
    client_secret = Column(Text, nullable=False, default="")  # Fernet ciphertext, never serialized
    redirect_uris = Column(JSON, nullable=False, default=list)
    configured_by = Column(Uuid(as_uuid=True), ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True)
    configured_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class LoginRequest(Base):
    """One popup sign-in attempt, accepted by the callback at most once."""

    __tablename__ = "auth_login_requests"

    request_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    state_digest = Column(String(64), unique=True, nullable=False)     # sha256 of the OAuth state
    binding_digest = Column(String(64), nullable=False)                # sha256 of the browser cookie
    provider = Column(String(32), nullable=False)
    purpose = Column(String(16), nullable=False)                       # "login" | "connect"
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=True)
    redirect_uri = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="pending")     # pending | in_progress | completed | failed
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True))
