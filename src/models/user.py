"""User model."""

from sqlalchemy import Boolean, Column, Integer, String, false
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    """Account identity. Email is stored trimmed and lowercased."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    # Null for accounts created through the OTP flow
    password_hash = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    verified = Column(Boolean, nullable=False, default=False, server_default=false())

    # Relationships
    sessions = relationship(
        "AuthSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    otp_codes = relationship(
        "OTPCode", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
