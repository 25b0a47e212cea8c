"""Social account model for OAuth tokens."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class SocialAccount(Base):
    """OAuth connection to YouTube, Instagram or TikTok."""

    __tablename__ = "social_accounts"
    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_social_accounts_user_platform"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String, nullable=False)  # youtube, instagram, tiktok
    platform_user_id = Column(String, nullable=False, default="unknown")
    access_token = Column(Text, nullable=False)  # Fernet ciphertext
    refresh_token = Column(Text, nullable=True)  # Fernet ciphertext
    expires_at = Column(DateTime(timezone=True), nullable=True)
    scope = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="social_accounts")
