from fastapi import FastAPI, Depends, HTTPException, status, Request, Query, UploadFile, File, Form, Body
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse, Response
from fastapi.routing import APIRouter
from contextlib import asynccontextmanager
from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from datetime import datetime, timezone
import math
import os
import logging
from typing import Optional

# Database imports
from app.database import get_db, engine
from app import models

# Authentication
from app.auth.security import Identity, get_current_identity, get_optional_identity

# Models
from app.models.user import User
from app.models.asset import GeneratedAsset, SavedAsset, AssetType, AssetStatus

# Services
from app.services.redis_service import RedisService, get_credit_cache, redis_service
from app.services.retry import retry_with_backoff
from app.services.storage_service import AssetStorage, build_storage, to_data_url
from app.services.openai_service import OpenAIImageService
from app.services.replicate_service import ReplicateVideoService
from app.services.elevenlabs_service import ElevenLabsSpeechService, estimate_duration

# Billing system
from app.billing.credits import ensure_user, debit_credits, add_credits, promo_code_used, record_promo_code
from app.billing.enforce import ensure_credits
from app.billing import pricing
from app.billing.plans import CREDIT_PACKAGES, DEFAULT_CREDITS, get_credits_per_dollar
from app.billing.timeutils import date_stamp

# Errors
from app.errors import ApiError, ErrorKind, StorageError, provider_error, register_error_handlers

# Pydantic schemas
from app.models.schemas import (
    UserOut,
    SavedAssetOut,
    SignedSavedAssetOut,
    GenerateAudioRequest,
    SaveAssetRequest,
    DeleteSavedAssetRequest,
    UpdateCreditsRequest,
    ImageResponse,
    VideoResponse,
    AudioResponse,
    SavedAssetsResponse,
)

# Config
from app.config import settings

# Setup Logger
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("adlume")


def build_providers(app: FastAPI):
    """Construct the provider clients once; a missing credential leaves None."""
    app.state.image_service = OpenAIImageService(settings.openai_api_key) if settings.openai_api_key else None
    app.state.video_service = ReplicateVideoService(settings.replicate_api_token) if settings.replicate_api_token else None
    app.state.speech_service = ElevenLabsSpeechService(settings.elevenlabs_api_key) if settings.elevenlabs_api_key else None
    for name, service in (
        ("OpenAI", app.state.image_service),
        ("Replicate", app.state.video_service),
        ("ElevenLabs", app.state.speech_service),
    ):
        if service is None:
            logger.warning(f"{name} credentials not configured; its endpoints will fail with 500")


# Lifespan events to handle startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Adlume API starting up...")
    # Create DB tables
    models.Base.metadata.create_all(bind=engine)
    logger.info("✅ Database tables created")

    os.makedirs(settings.local_upload_dir, exist_ok=True)
    app.state.storage = build_storage(settings)
    build_providers(app)

    if redis_service.ping():
        logger.info("✅ Redis connected successfully")
    else:
        logger.warning("⚠️ Redis unavailable. Credit balances will be read from the database.")

    yield

    logger.info("🛑 Adlume API shutting down...")

# Create FastAPI app with lifespan
app = FastAPI(
    title="Adlume API",
    description="AI image, video and voiceover generation for ad creatives",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: only the frontend origin(s)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)

register_error_handlers(app)

# Local storage fallback is served from here
app.mount("/uploads", StaticFiles(directory=settings.local_upload_dir, check_dir=False), name="uploads")

# API Routers
generation_router = APIRouter(prefix="/api", tags=["Generation"])
assets_router = APIRouter(prefix="/api", tags=["Assets"])
account_router = APIRouter(prefix="/api", tags=["Account"])
health_router = APIRouter(prefix="/health", tags=["Health"])

# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_image_service(request: Request) -> Optional[OpenAIImageService]:
    return getattr(request.app.state, "image_service", None)


def get_video_service(request: Request) -> Optional[ReplicateVideoService]:
    return getattr(request.app.state, "video_service", None)


def get_speech_service(request: Request) -> Optional[ElevenLabsSpeechService]:
    return getattr(request.app.state, "speech_service", None)


def get_storage(request: Request) -> AssetStorage:
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        storage = request.app.state.storage = build_storage(settings)
    return storage


# =============================================================================
# HELPERS
# =============================================================================

async def call_provider(operation):
    return await retry_with_backoff(
        operation,
        max_retries=settings.provider_max_retries,
        base_delay=settings.provider_retry_base_delay,
    )


def require_provider(service, message: str, tag: str):
    if service is None:
        logger.error(f"[{tag}] {message}")
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, message)
    return service


def check_balance(db: Session, cache: RedisService, user_id: str, cost: Optional[int]):
    """Reject up front when enforcement is on and the known balance is short."""
    if not settings.enforce_credit_balance or cost is None:
        return
    cached = cache.get_balance(user_id)
    if cached is not None:
        balance = cached["credits"]
    else:
        user = db.get(User, user_id)
        balance = user.credits if user else DEFAULT_CREDITS
    ensure_credits(balance, cost)


def record_generation(
    db: Session,
    cache: RedisService,
    identity: Identity,
    asset_type: AssetType,
    prompt: str,
    url: str,
    cost: int,
) -> GeneratedAsset:
    """Persist the asset and charge for it in one commit."""
    ensure_user(db, identity.id, identity.display_name, identity.email)
    asset = GeneratedAsset(
        user_id=identity.id,
        type=asset_type,
        prompt=prompt,
        status=AssetStatus.COMPLETED,
        url=url,
        credits_used=cost,
    )
    db.add(asset)
    db.flush()
    if not debit_credits(db, identity.id, cost, require_balance=settings.enforce_credit_balance):
        db.rollback()
        raise ApiError(status.HTTP_402_PAYMENT_REQUIRED, "Not enough credits", creditsRequired=cost)
    db.commit()
    cache.invalidate(identity.id)
    logger.info(f"Recorded {asset_type.value} {asset.id} for user {identity.id}, charged {cost} credits")
    return asset


async def read_upload(upload: UploadFile, default_type: str):
    content = await upload.read()
    return (upload.filename or "upload", content, upload.content_type or default_type)


# =============================================================================
# GENERATION ROUTES
# =============================================================================

@generation_router.post("/generate", response_model=ImageResponse)
async def generate_image(
    prompt: Optional[str] = Form(None),
    size: str = Form("1024x1024"),
    output_format: str = Form("png", alias="format"),
    background: str = Form("auto"),
    quality: str = Form("high"),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    cache: RedisService = Depends(get_credit_cache),
    image_service: Optional[OpenAIImageService] = Depends(get_image_service),
):
    """Generate an image from a prompt and charge for it"""
    if not prompt:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Prompt is required")
    image_service = require_provider(image_service, "OpenAI API key is not configured", "IMAGE_GENERATION_ERROR")
    check_balance(db, cache, identity.id, pricing.calculate_credits(quality, size))

    try:
        b64_image = await call_provider(
            lambda: image_service.generate(prompt, size, output_format, background, quality)
        )
    except Exception as e:
        logger.error(f"[IMAGE_GENERATION_ERROR] {e.__class__.__name__}: {e}")
        raise provider_error(e, "OpenAI", "generate image", {
            ErrorKind.AUTH: "Invalid OpenAI API key. Please check your configuration.",
        })

    image_url = f"data:image/{output_format};base64,{b64_image}"

    credits_required = pricing.calculate_credits(quality, size)
    if credits_required is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid quality or size configuration")

    try:
        asset = record_generation(db, cache, identity, AssetType.IMAGE, prompt, image_url, credits_required)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"[IMAGE_GENERATION_ERROR] Failed to record generation: {e}")
        raise ApiError(500, "Failed to generate image. Please try again later.", details=str(e))

    return ImageResponse(url=image_url, generated_asset_id=asset.id)


@generation_router.post("/edit", response_model=ImageResponse, response_model_exclude_none=True)
async def edit_image(
    prompt: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    mask: Optional[UploadFile] = File(None),
    size: str = Form("1024x1024"),
    background: str = Form("auto"),
    identity: Identity = Depends(get_current_identity),
    image_service: Optional[OpenAIImageService] = Depends(get_image_service),
):
    """Edit an uploaded image, optionally only inside a mask"""
    if not prompt:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Prompt is required")
    if image is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Image is required")
    image_service = require_provider(image_service, "OpenAI API key is not configured", "IMAGE_EDIT_ERROR")

    image_file = await read_upload(image, "image/png")
    mask_file = await read_upload(mask, "image/png") if mask is not None else None
    logger.info(f"Editing image for user {identity.id} (mask: {mask_file is not None})")

    try:
        b64_image = await call_provider(
            lambda: image_service.edit(prompt, image_file, mask_file, size, background)
        )
    except Exception as e:
        logger.error(f"[IMAGE_EDIT_ERROR] {e.__class__.__name__}: {e}")
        raise provider_error(e, "OpenAI", "edit image", {
            ErrorKind.AUTH: "Invalid OpenAI API key. Please check your configuration.",
            ErrorKind.INVALID_INPUT: "Invalid mask or image dimensions. Please ensure the mask matches the image size.",
        })

    return ImageResponse(url=f"data:image/png;base64,{b64_image}")


@generation_router.post("/generate-video", response_model=VideoResponse)
async def generate_video(
    prompt: Optional[str] = Form(None),
    duration: str = Form("5"),
    quality: str = Form("720p"),
    aspect_ratio: str = Form("16:9", alias="aspectRatio"),
    motion_mode: str = Form("normal", alias="motionMode"),
    style: Optional[str] = Form(None),
    effect: Optional[str] = Form(None),
    product_image: Optional[UploadFile] = File(None, alias="productImage"),
    image_data: Optional[str] = Form(None, alias="imageData"),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    cache: RedisService = Depends(get_credit_cache),
    video_service: Optional[ReplicateVideoService] = Depends(get_video_service),
):
    """Generate a short video ad, optionally animating a product image"""
    if not prompt:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Prompt is required")
    try:
        duration_seconds = int(duration)
    except ValueError:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Duration must be a whole number of seconds")
    video_service = require_provider(video_service, "Replicate API token is not configured", "VIDEO_GENERATION_ERROR")

    model_input = {
        "prompt": prompt,
        "quality": quality,
        "duration": duration_seconds,
        "aspect_ratio": aspect_ratio,
        "motion_mode": motion_mode,
    }
    if style and style != "None":
        model_input["style"] = style
    if effect and effect != "None":
        model_input["effect"] = effect
    if product_image is not None:
        content = await product_image.read()
        model_input["image"] = to_data_url(product_image.content_type or "image/png", content)
    elif image_data:
        model_input["image"] = image_data

    video_key = f"{duration_seconds}s"
    check_balance(db, cache, identity.id, pricing.calculate_video_credits(video_key, quality, motion_mode))
    logged_input = {**model_input, "image": "[IMAGE_DATA]"} if "image" in model_input else model_input
    logger.info(f"Generating video with input: {logged_input}")

    try:
        video_url = await call_provider(lambda: video_service.generate(model_input))
    except Exception as e:
        logger.error(f"[VIDEO_GENERATION_ERROR] {e.__class__.__name__}: {e}")
        raise provider_error(e, "Replicate", "generate video", {
            ErrorKind.AUTH: "Invalid Replicate API token. Please check your configuration.",
            ErrorKind.TIMEOUT: "Video generation timed out. Please try again with a shorter duration.",
        })
    logger.info(f"Video generation completed: {video_url}")

    credits_used = pricing.calculate_video_credits(video_key, quality, motion_mode)
    if credits_used is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid duration, resolution or motion configuration")

    try:
        asset = record_generation(db, cache, identity, AssetType.VIDEO, prompt, video_url, credits_used)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"[VIDEO_GENERATION_ERROR] Failed to record generation: {e}")
        raise ApiError(500, "Failed to generate video. Please try again later.", details=str(e))

    return VideoResponse(
        video_url=video_url,
        generated_asset_id=asset.id,
        duration=duration_seconds,
        quality=quality,
        aspect_ratio=aspect_ratio,
        motion_mode=motion_mode,
        style=style,
        effect=effect,
    )


@generation_router.post("/generate-audio", response_model=AudioResponse)
async def generate_audio(
    body: GenerateAudioRequest,
    identity: Identity = Depends(get_current_identity),
    speech_service: Optional[ElevenLabsSpeechService] = Depends(get_speech_service),
):
    """Text-to-speech voiceover"""
    if not body.text:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Text is required")
    speech_service = require_provider(speech_service, "ElevenLabs API key is not configured", "AUDIO_GENERATION_ERROR")
    logger.info(f"Generating audio for user {identity.id}: voice={body.voice} model={body.model}")

    try:
        audio = await call_provider(lambda: speech_service.synthesize(body.text, body.voice, body.model))
    except Exception as e:
        logger.error(f"[AUDIO_GENERATION_ERROR] {e.__class__.__name__}: {e}")
        raise provider_error(e, "ElevenLabs", "generate audio", {
            ErrorKind.AUTH: "Invalid ElevenLabs API key. Please check your configuration.",
        })

    logger.info("Audio generation completed")
    return AudioResponse(audio_data=to_data_url("audio/mpeg", audio), duration=estimate_duration(body.text))


@generation_router.post("/merge-audio-video")
async def merge_audio_video(
    video: Optional[UploadFile] = File(None),
    audio: Optional[UploadFile] = File(None),
):
    """Placeholder merge: the voiceover is not mixed in yet, the video comes back as uploaded"""
    if video is None or audio is None:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Both video and audio files are required")
    try:
        content = await video.read()
        logger.info("Audio-video merge requested; returning the original video")
        return {
            "videoData": to_data_url(video.content_type or "video/mp4", content),
            "message": "Video processing completed. Audio merging is not available yet.",
        }
    except Exception as e:
        logger.error(f"[AUDIO_VIDEO_MERGE_ERROR] {e}")
        raise ApiError(500, "Failed to process video. Please try again later.", details=str(e))

# =============================================================================
# ASSET ROUTES
# =============================================================================

def saved_asset_json(saved: SavedAsset) -> dict:
    return SavedAssetOut.model_validate(saved).model_dump(by_alias=True, mode="json")


@assets_router.post("/save-asset")
async def save_asset(
    body: SaveAssetRequest,
    db: Session = Depends(get_db),
    storage: AssetStorage = Depends(get_storage),
):
    """Copy a generated asset to durable storage"""
    if not body.generated_asset_id or not body.user_id:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Missing required fields: generatedAssetId, userId")

    # Placeholder id handed out while a generation is still in flight
    if body.generated_asset_id == "generating":
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"error": "Asset is still being generated, please try again in a moment"},
        )

    try:
        generated = db.get(GeneratedAsset, body.generated_asset_id)
        if not generated:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Generated asset not found")
        if generated.user_id != body.user_id:
            raise ApiError(status.HTTP_403_FORBIDDEN, "Unauthorized: Asset does not belong to user")

        existing = db.query(SavedAsset).filter(SavedAsset.generated_asset_id == generated.id).first()
        if existing:
            raise ApiError(status.HTTP_409_CONFLICT, "Asset is already saved", savedAsset=saved_asset_json(existing))

        if not generated.url:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Generated asset does not have a URL")

        asset_type = "videos" if generated.type == AssetType.VIDEO else "images"
        logger.info(f"Uploading {asset_type} for user {body.user_id}")
        s3_url = await storage.upload_asset(generated.url, asset_type, body.user_id)

        saved = SavedAsset(user_id=body.user_id, generated_asset_id=generated.id, s3_url=s3_url)
        db.add(saved)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent save of the same asset
            db.rollback()
            existing = db.query(SavedAsset).filter(SavedAsset.generated_asset_id == generated.id).first()
            raise ApiError(status.HTTP_409_CONFLICT, "Asset is already saved", savedAsset=saved_asset_json(existing))
        db.refresh(saved)

        return {
            "success": True,
            "savedAsset": saved_asset_json(saved),
            "message": "Asset saved successfully",
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error saving asset: {e}")
        raise ApiError(500, "Failed to save asset", details=str(e))


@assets_router.get("/saved-assets", response_model=SavedAssetsResponse)
def list_saved_assets(
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
    storage: AssetStorage = Depends(get_storage),
):
    """Saved assets, newest first, with signed URLs"""
    if not user_id:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Missing required parameter: userId")
    try:
        saved_assets = (
            db.query(SavedAsset)
            .options(joinedload(SavedAsset.generated_asset))
            .filter(SavedAsset.user_id == user_id)
            .order_by(SavedAsset.created_at.desc())
            .all()
        )
        items = []
        for saved in saved_assets:
            data = SavedAssetOut.model_validate(saved).model_dump()
            data.update(s3_url=storage.signed_url(saved.s3_url, 3600), original_s3_url=saved.s3_url)
            items.append(SignedSavedAssetOut(**data))
        return SavedAssetsResponse(saved_assets=items, count=len(items))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching saved assets: {e}")
        raise ApiError(500, "Failed to fetch saved assets", details=str(e))


@assets_router.delete("/saved-assets")
def delete_saved_asset(
    body: DeleteSavedAssetRequest = Body(...),
    db: Session = Depends(get_db),
):
    """Remove a saved asset record (the stored object is kept)"""
    if not body.saved_asset_id or not body.user_id:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Missing required fields: savedAssetId, userId")
    try:
        saved = db.get(SavedAsset, body.saved_asset_id)
        if not saved:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Saved asset not found")
        if saved.user_id != body.user_id:
            raise ApiError(status.HTTP_403_FORBIDDEN, "Unauthorized: Asset does not belong to user")

        db.delete(saved)
        db.commit()
        # TODO: delete the stored object as well (storage.delete_asset) once
        # shared URLs handed out from the dashboard are tracked.
        return {"success": True, "message": "Saved asset deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting saved asset: {e}")
        raise ApiError(500, "Failed to delete saved asset", details=str(e))


@assets_router.get("/download-asset")
async def download_asset(
    asset_id: Optional[str] = Query(None, alias="assetId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
    storage: AssetStorage = Depends(get_storage),
):
    """Stream a saved asset back as an attachment"""
    if not asset_id or not user_id:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Missing required parameters: assetId, userId")
    try:
        saved = (
            db.query(SavedAsset)
            .options(joinedload(SavedAsset.generated_asset))
            .filter(SavedAsset.id == asset_id)
            .first()
        )
        if not saved:
            raise ApiError(status.HTTP_404_NOT_FOUND, "Asset not found")
        if saved.user_id != user_id:
            raise ApiError(status.HTTP_403_FORBIDDEN, "Unauthorized: Asset does not belong to user")

        logger.info(f"Downloading asset from storage: {saved.s3_url}")
        try:
            content = await storage.download(saved.s3_url)
        except StorageError as e:
            logger.error(f"Storage fetch failed: {e}")
            raise ApiError(500, "Failed to fetch asset from storage")

        asset_type = saved.generated_asset.type
        is_video = asset_type == AssetType.VIDEO
        extension = "mp4" if is_video else "png"
        filename = f"adlume-{asset_type.value.lower()}-{date_stamp(saved.created_at)}.{extension}"

        return Response(
            content=content,
            media_type="video/mp4" if is_video else "image/png",
            headers={
                "Content-Disposition": f'attachment; filename="{filename}"',
                "Cache-Control": "no-cache",
            },
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error downloading asset: {e}")
        raise ApiError(500, "Failed to download asset", details=str(e))


@assets_router.get("/dashboard-stats")
def dashboard_stats(
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
    storage: AssetStorage = Depends(get_storage),
):
    """Counts and recent items for the dashboard"""
    if not user_id:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Missing required parameter: userId")
    try:
        user = db.get(User, user_id)
        if not user:
            raise ApiError(status.HTTP_404_NOT_FOUND, "User not found. Please refresh the page.")

        by_status = dict(
            db.query(GeneratedAsset.status, func.count(GeneratedAsset.id))
            .filter(GeneratedAsset.user_id == user_id)
            .group_by(GeneratedAsset.status)
            .all()
        )
        total = sum(by_status.values())
        completed = by_status.get(AssetStatus.COMPLETED, 0)
        failed = by_status.get(AssetStatus.FAILED, 0)
        success_rate = math.floor(completed / total * 100 + 0.5) if total else 0

        recent = (
            db.query(GeneratedAsset)
            .options(joinedload(GeneratedAsset.saved_asset))
            .filter(
                GeneratedAsset.user_id == user_id,
                GeneratedAsset.status == AssetStatus.COMPLETED,
                GeneratedAsset.url.isnot(None),
            )
            .order_by(GeneratedAsset.created_at.desc())
            .limit(6)
            .all()
        )
        recent_ads = [
            {
                "id": ad.id,
                "type": ad.type.value,
                "prompt": ad.prompt,
                "url": storage.signed_url(ad.url, 1800),
                "createdAt": ad.created_at,
                "savedAsset": {"id": ad.saved_asset.id} if ad.saved_asset else None,
                "isSaved": ad.saved_asset is not None,
            }
            for ad in recent
        ]

        last = (
            db.query(GeneratedAsset)
            .filter(GeneratedAsset.user_id == user_id)
            .order_by(GeneratedAsset.created_at.desc())
            .first()
        )
        saved_count = db.query(func.count(SavedAsset.id)).filter(SavedAsset.user_id == user_id).scalar()

        return {
            "success": True,
            "stats": {
                "user": {"credits": user.credits, "name": user.name, "email": user.email},
                "ads": {
                    "total": total,
                    "completed": completed,
                    "failed": failed,
                    "successRate": success_rate,
                },
                "saved": saved_count,
                "lastGenerated": {"date": last.created_at, "status": last.status.value} if last else None,
                "recentAds": recent_ads,
            },
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching dashboard stats: {e}")
        raise ApiError(500, "Failed to fetch dashboard stats", details=str(e))

# =====================================================================
# ACCOUNT ROUTES
# =====================================================================

def user_json(user: User) -> dict:
    return UserOut.model_validate(user).model_dump(by_alias=True, mode="json")


def create_user(db: Session, identity: Identity) -> User:
    user = User(id=identity.id, name=identity.display_name, email=identity.email, credits=DEFAULT_CREDITS)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {identity.id}")
    return user


@account_router.post("/sync-user")
def sync_user(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    """Create the user on first contact or refresh their display name"""
    try:
        user = db.get(User, identity.id)
        if user:
            user.name = identity.display_name
            db.commit()
            db.refresh(user)
            return {"success": True, "user": user_json(user), "action": "updated"}
        user = create_user(db, identity)
        return {"success": True, "user": user_json(user), "action": "created"}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error syncing user: {e}")
        raise ApiError(500, "Failed to sync user data", details=str(e))


@account_router.get("/sync-user")
def get_synced_user(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    """Return the user row, creating it if missing"""
    try:
        user = db.get(User, identity.id)
        if user:
            return {"success": True, "user": user_json(user), "action": "found"}
        user = create_user(db, identity)
        return {"success": True, "user": user_json(user), "action": "created"}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error getting user: {e}")
        raise ApiError(500, "Failed to get user data", details=str(e))


@account_router.get("/user-credits")
def get_user_credits(
    user_id: Optional[str] = Query(None, alias="userId"),
    identity: Optional[Identity] = Depends(get_optional_identity),
    db: Session = Depends(get_db),
    cache: RedisService = Depends(get_credit_cache),
):
    """Current balance, served from the cache when possible"""
    if not user_id:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Missing required parameter: userId")

    cached = cache.get_balance(user_id)
    if cached is not None:
        return {"success": True, "credits": cached["credits"], "name": cached["name"]}

    try:
        user = db.get(User, user_id)
        if not user:
            # Only the user themselves may trigger the lazy create
            if identity is None or identity.id != user_id:
                raise ApiError(status.HTTP_404_NOT_FOUND, "User not found")
            user = create_user(db, identity)

        cache.set_balance(user.id, user.credits, user.name)
        return {"success": True, "credits": user.credits, "name": user.name}
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error fetching user credits: {e}")
        raise ApiError(500, "Failed to fetch user credits", details=str(e))


@account_router.post("/user-credits")
def update_user_credits(
    body: UpdateCreditsRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
    cache: RedisService = Depends(get_credit_cache),
):
    """Grant or remove credits, recording promo code redemptions"""
    if not body.credits or not body.action:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Missing required fields: credits, action")
    if body.credits < 0:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Credits must be a positive number")

    try:
        if body.promo_code and promo_code_used(db, identity.id, body.promo_code):
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Promo code has already been used")

        ensure_user(db, identity.id, identity.display_name, identity.email)
        if body.action == "add":
            add_credits(db, identity.id, body.credits)
            if body.promo_code:
                record_promo_code(db, identity.id, body.promo_code, body.credits, body.source)
        else:
            debit_credits(db, identity.id, body.credits)
        db.commit()
        cache.invalidate(identity.id)

        user = db.get(User, identity.id)
        verb = "added" if body.action == "add" else "subtracted"
        logger.info(f"{verb.capitalize()} {body.credits} credits for user {identity.id} (source: {body.source})")
        return {
            "success": True,
            "credits": user.credits,
            "message": f"Successfully {verb} {body.credits} credits",
        }
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating user credits: {e}")
        raise ApiError(500, "Failed to update user credits", details=str(e))


@account_router.get("/pricing")
def get_pricing():
    """Price tables with display labels, and the credit packages"""
    return {
        "images": [
            {
                "quality": p.quality,
                "size": p.size,
                "credits": p.credits_to_charge,
                "qualityLabel": pricing.format_quality(p.quality),
                "sizeLabel": pricing.format_size(p.size),
            }
            for p in pricing.IMAGE_PRICING
        ],
        "videos": [
            {
                "duration": p.duration,
                "resolution": p.resolution,
                "motion": p.motion,
                "credits": p.credits_to_charge,
                "durationLabel": pricing.format_duration(p.duration),
                "resolutionLabel": pricing.format_resolution(p.resolution),
                "motionLabel": pricing.format_motion_mode(p.motion),
            }
            for p in pricing.VIDEO_PRICING
        ],
        "packages": [
            {
                "id": package.id,
                "name": package.name,
                "price": package.price,
                "credits": package.credits,
                "description": package.description,
                "popular": package.popular,
                "creditsPerDollar": get_credits_per_dollar(package.id),
            }
            for package in CREDIT_PACKAGES.values()
        ],
    }

# =====================================================================
# HEALTH ROUTES
# =====================================================================

@health_router.get("/database")
def database_health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}


@health_router.get("/storage")
def storage_health(storage: AssetStorage = Depends(get_storage)):
    if storage.ping():
        return {"status": "healthy", "storage": storage.name}
    return {"status": "unhealthy", "storage": storage.name}


@health_router.get("/redis")
def redis_health():
    if redis_service.ping():
        return {"status": "healthy", "redis": "connected"}
    else:
        return {"status": "unhealthy", "redis": "disconnected"}


@health_router.get("/")
def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
    }

# Register all routers
app.include_router(generation_router)
app.include_router(assets_router)
app.include_router(account_router)
app.include_router(health_router)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
