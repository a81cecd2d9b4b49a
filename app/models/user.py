from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from app.database import Base
from app.billing.plans import DEFAULT_CREDITS
from app.billing.timeutils import now_utc


class User(Base):
    __tablename__ = "users"

    # Subject of the identity provider's session token
    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=True)
    email = Column(String, unique=True, index=True, nullable=True)

    credits = Column(Integer, nullable=False, default=DEFAULT_CREDITS)

    created_at = Column(DateTime(timezone=True), default=now_utc)
    updated_at = Column(DateTime(timezone=True), default=now_utc, onupdate=now_utc)

    generated_assets = relationship("GeneratedAsset", back_populates="user")
    saved_assets = relationship("SavedAsset", back_populates="user")
