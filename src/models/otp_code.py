"""One-time password model."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.mixins import CreatedAtMixin


class OTPCode(Base, CreatedAtMixin):
    """Hashed email verification code.

    Active means used_at is null and expires_at is in the future. Only the
    hash of the code is stored.
    """

    __tablename__ = "otp_codes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email = Column(String(255), nullable=False, index=True)
    hashed_otp = Column(String(255), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    attempts = Column(Integer, nullable=False, default=0, server_default="0")

    # Relationships
    user = relationship("User", back_populates="otp_codes")

    @property
    def is_used(self) -> bool:
        """Check if the code has been consumed or burned."""
        return self.used_at is not None
