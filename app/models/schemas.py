from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, List, Literal
from app.models.asset import AssetType


class CamelModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class UserOut(CamelModel):
    id: str
    name: Optional[str]
    email: Optional[str]
    credits: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class GeneratedAssetSummary(CamelModel):
    id: str
    type: AssetType
    prompt: str
    created_at: datetime


class SavedAssetOut(CamelModel):
    id: str
    user_id: str
    generated_asset_id: str
    s3_url: str
    created_at: datetime
    generated_asset: Optional[GeneratedAssetSummary] = None


class SignedSavedAssetOut(SavedAssetOut):
    original_s3_url: str


# Request bodies

class GenerateAudioRequest(BaseModel):
    text: Optional[str] = None
    voice: Optional[str] = None
    model: Optional[str] = None


class SaveAssetRequest(CamelModel):
    generated_asset_id: Optional[str] = None
    user_id: Optional[str] = None


class DeleteSavedAssetRequest(CamelModel):
    saved_asset_id: Optional[str] = None
    user_id: Optional[str] = None


class UpdateCreditsRequest(CamelModel):
    credits: Optional[int] = None
    action: Optional[Literal["add", "subtract"]] = None
    source: Optional[str] = None
    promo_code: Optional[str] = None

    model_config = ConfigDict(
        **CamelModel.model_config,
        json_schema_extra={
            "example": {
                "credits": 100,
                "action": "add",
                "source": "promo_code",
                "promoCode": "WELCOME100",
            }
        },
    )


# Responses

class ImageResponse(CamelModel):
    url: str
    generated_asset_id: Optional[str] = None


class VideoResponse(CamelModel):
    video_url: str
    generated_asset_id: str
    duration: int
    quality: str
    aspect_ratio: str
    motion_mode: str
    style: Optional[str] = None
    effect: Optional[str] = None


class AudioResponse(CamelModel):
    audio_data: str
    duration: int


class SavedAssetsResponse(CamelModel):
    success: bool = True
    saved_assets: List[SignedSavedAssetOut]
    count: int
