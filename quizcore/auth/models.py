"""
Authentication models for Quiz-Core.

This module defines SQLAlchemy models for:
- Users
- Roles
- Refresh tokens
"""
import uuid
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Table
from sqlalchemy.orm import relationship
from quizcore.base_service import Base, utcnow

USERNAME_MAX_LENGTH = 128

# Association table for many-to-many relationship between users and roles
user_roles = Table(
    'user_roles',
    Base.metadata,
    Column('user_id', String(36), ForeignKey('users.id', ondelete="CASCADE"), primary_key=True),
    Column('role_id', Integer, ForeignKey('roles.id', ondelete="CASCADE"), primary_key=True)
)


class User(Base):
    """Registered identity."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(USERNAME_MAX_LENGTH), nullable=False)
    normalized_username = Column(String(USERNAME_MAX_LENGTH), unique=True, index=True, nullable=False)
    email = Column(String(320), nullable=False)
    normalized_email = Column(String(320), unique=True, index=True, nullable=False)
    display_name = Column(String(256), nullable=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_modified_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    roles = relationship("Role", secondary=user_roles, back_populates="users", lazy="selectin")
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")


class Role(Base):
    """Named permission grouping."""
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(64), unique=True, index=True, nullable=False)
    description = Column(String, nullable=True)

    # Relationships
    users = relationship("User", secondary=user_roles, back_populates="roles")


class RefreshToken(Base):
    """Server-side record of an outstanding refresh token."""
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    value = Column(String(128), unique=True, index=True, nullable=False)
    client_id = Column(String(128), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    user = relationship("User", back_populates="refresh_tokens")
