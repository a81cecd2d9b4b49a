import enum
import uuid
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from app.database import Base
from app.billing.timeutils import now_utc


def new_id() -> str:
    return str(uuid.uuid4())


class AssetType(str, enum.Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class AssetStatus(str, enum.Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class GeneratedAsset(Base):
    __tablename__ = "generated_assets"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(AssetType), nullable=False)
    prompt = Column(Text, nullable=False)
    status = Column(Enum(AssetStatus), nullable=False, default=AssetStatus.PROCESSING)
    url = Column(Text, nullable=True)  # data URL or provider URL
    credits_used = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=now_utc, index=True)

    user = relationship("User", back_populates="generated_assets")
    saved_asset = relationship("SavedAsset", back_populates="generated_asset", uselist=False)


class SavedAsset(Base):
    __tablename__ = "saved_assets"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    generated_asset_id = Column(String(36), ForeignKey("generated_assets.id"), nullable=False, unique=True)
    s3_url = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=now_utc, index=True)

    user = relationship("User", back_populates="saved_assets")
    generated_asset = relationship("GeneratedAsset", back_populates="saved_asset")
