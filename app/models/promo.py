from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from app.database import Base
from app.billing.timeutils import now_utc


class PromoCodeUsage(Base):
    __tablename__ = "promo_code_usages"

    # One row per (user_id, promo_code); checked in application code
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    promo_code = Column(String, nullable=False)
    credits_added = Column(Integer, nullable=False)
    source = Column(String, nullable=False, default="promo_code")
    created_at = Column(DateTime(timezone=True), default=now_utc)
