# app/models/__init__.py
from app.database import Base
from .user import User
from .asset import GeneratedAsset, SavedAsset, AssetType, AssetStatus
from .promo import PromoCodeUsage

__all__ = ['Base', 'User', 'GeneratedAsset', 'SavedAsset', 'AssetType', 'AssetStatus', 'PromoCodeUsage']
