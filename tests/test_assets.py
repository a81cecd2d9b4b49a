import asyncio
from datetime import datetime, timezone

import pytest

from app.models.asset import AssetStatus, AssetType, GeneratedAsset, SavedAsset
from app.models.user import User

PNG_DATA_URL = "data:image/png;base64,aGVsbG8="


@pytest.fixture
def generated(seed, user):
    return seed(GeneratedAsset(
        id="gen_1",
        user_id=user.id,
        type=AssetType.IMAGE,
        prompt="a red shoe",
        status=AssetStatus.COMPLETED,
        url=PNG_DATA_URL,
        credits_used=25,
    ))


@pytest.fixture
def saved(client, generated):
    response = client.post("/api/save-asset", json={"generatedAssetId": "gen_1", "userId": "user_123"})
    assert response.status_code == 200
    return response.json()["savedAsset"]


# Saving

def test_save_asset_copies_to_storage(client, generated, storage):
    response = client.post("/api/save-asset", json={"generatedAssetId": "gen_1", "userId": "user_123"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Asset saved successfully"
    saved = body["savedAsset"]
    assert saved["generatedAssetId"] == "gen_1"
    assert saved["userId"] == "user_123"
    assert saved["s3Url"].startswith("/uploads/images/")
    assert storage.path_for(saved["s3Url"]).read_bytes() == b"hello"


def test_save_asset_twice_conflicts(client, saved):
    response = client.post("/api/save-asset", json={"generatedAssetId": "gen_1", "userId": "user_123"})
    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "Asset is already saved"
    assert body["savedAsset"]["id"] == saved["id"]


def test_save_asset_still_generating(client):
    response = client.post("/api/save-asset", json={"generatedAssetId": "generating", "userId": "user_123"})
    assert response.status_code == 202


def test_save_asset_requires_fields(client):
    response = client.post("/api/save-asset", json={"userId": "user_123"})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: generatedAssetId, userId"


def test_save_unknown_asset(client, user):
    response = client.post("/api/save-asset", json={"generatedAssetId": "nope", "userId": "user_123"})
    assert response.status_code == 404


def test_save_someone_elses_asset(client, generated, seed):
    seed(User(id="user_other", name="Other", credits=10))
    response = client.post("/api/save-asset", json={"generatedAssetId": "gen_1", "userId": "user_other"})
    assert response.status_code == 403
    assert response.json()["error"] == "Unauthorized: Asset does not belong to user"


def test_save_asset_without_url(client, seed, user):
    seed(GeneratedAsset(
        id="gen_pending",
        user_id=user.id,
        type=AssetType.VIDEO,
        prompt="waves",
        status=AssetStatus.PROCESSING,
        credits_used=0,
    ))
    response = client.post("/api/save-asset", json={"generatedAssetId": "gen_pending", "userId": "user_123"})
    assert response.status_code == 400
    assert response.json()["error"] == "Generated asset does not have a URL"


# Listing

def test_list_saved_assets(client, saved):
    response = client.get("/api/saved-assets", params={"userId": "user_123"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["count"] == 1
    item = body["savedAssets"][0]
    assert item["id"] == saved["id"]
    assert item["originalS3Url"] == saved["s3Url"]
    # Local files are served as-is
    assert item["s3Url"] == saved["s3Url"]
    assert item["generatedAsset"]["type"] == "IMAGE"
    assert item["generatedAsset"]["prompt"] == "a red shoe"


def test_list_saved_assets_newest_first(client, seed, user):
    older = datetime(2026, 1, 1, tzinfo=timezone.utc)
    newer = datetime(2026, 2, 1, tzinfo=timezone.utc)
    seed(
        GeneratedAsset(id="g1", user_id=user.id, type=AssetType.IMAGE, prompt="one",
                       status=AssetStatus.COMPLETED, url=PNG_DATA_URL, credits_used=2),
        GeneratedAsset(id="g2", user_id=user.id, type=AssetType.VIDEO, prompt="two",
                       status=AssetStatus.COMPLETED, url="https://x/v.mp4", credits_used=52),
        SavedAsset(id="s1", user_id=user.id, generated_asset_id="g1", s3_url="/uploads/images/1.png", created_at=older),
        SavedAsset(id="s2", user_id=user.id, generated_asset_id="g2", s3_url="/uploads/videos/2.mp4", created_at=newer),
    )
    body = client.get("/api/saved-assets", params={"userId": "user_123"}).json()
    assert [item["id"] for item in body["savedAssets"]] == ["s2", "s1"]


def test_list_saved_assets_requires_user(client):
    response = client.get("/api/saved-assets")
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required parameter: userId"


def test_list_saved_assets_for_user_without_any(client):
    body = client.get("/api/saved-assets", params={"userId": "nobody"}).json()
    assert body["savedAssets"] == []
    assert body["count"] == 0


# Deleting

def test_delete_saved_asset(client, saved, fetch):
    response = client.request("DELETE", "/api/saved-assets", json={"savedAssetId": saved["id"], "userId": "user_123"})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert fetch(SavedAsset, saved["id"]) is None
    # The generated asset itself is untouched
    assert fetch(GeneratedAsset, "gen_1") is not None

    response = client.request("DELETE", "/api/saved-assets", json={"savedAssetId": saved["id"], "userId": "user_123"})
    assert response.status_code == 404


def test_delete_someone_elses_saved_asset(client, saved):
    response = client.request("DELETE", "/api/saved-assets", json={"savedAssetId": saved["id"], "userId": "user_other"})
    assert response.status_code == 403


def test_delete_requires_fields(client):
    response = client.request("DELETE", "/api/saved-assets", json={"savedAssetId": "s1"})
    assert response.status_code == 400


# Downloading

def test_download_saved_asset(client, saved):
    response = client.get("/api/download-asset", params={"assetId": saved["id"], "userId": "user_123"})
    assert response.status_code == 200
    assert response.content == b"hello"
    assert response.headers["content-type"] == "image/png"
    assert response.headers["cache-control"] == "no-cache"
    date = saved["createdAt"][:10]
    assert response.headers["content-disposition"] == f'attachment; filename="adlume-image-{date}.png"'


def test_download_video_name(client, seed, user, storage):
    url = asyncio.run(storage.store(b"movie", "video/mp4", "clip.mp4", "videos", user.id))
    seed(
        GeneratedAsset(id="gv", user_id=user.id, type=AssetType.VIDEO, prompt="waves",
                       status=AssetStatus.COMPLETED, url="https://x/v.mp4", credits_used=52),
        SavedAsset(id="sv", user_id=user.id, generated_asset_id="gv", s3_url=url,
                   created_at=datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)),
    )
    response = client.get("/api/download-asset", params={"assetId": "sv", "userId": "user_123"})
    assert response.status_code == 200
    assert response.content == b"movie"
    assert response.headers["content-type"] == "video/mp4"
    assert 'filename="adlume-video-2026-03-04.mp4"' in response.headers["content-disposition"]


def test_download_missing_file(client, seed, generated):
    seed(SavedAsset(id="gone", user_id="user_123", generated_asset_id="gen_1", s3_url="/uploads/images/gone.png"))
    response = client.get("/api/download-asset", params={"assetId": "gone", "userId": "user_123"})
    assert response.status_code == 500
    assert response.json()["error"] == "Failed to fetch asset from storage"


def test_download_checks_ownership(client, saved):
    response = client.get("/api/download-asset", params={"assetId": saved["id"], "userId": "user_other"})
    assert response.status_code == 403


def test_download_unknown_asset(client):
    response = client.get("/api/download-asset", params={"assetId": "nope", "userId": "user_123"})
    assert response.status_code == 404


def test_download_requires_params(client):
    assert client.get("/api/download-asset", params={"assetId": "x"}).status_code == 400
