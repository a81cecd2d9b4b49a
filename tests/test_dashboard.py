from datetime import datetime, timedelta, timezone

from app.models.asset import AssetStatus, AssetType, GeneratedAsset, SavedAsset
from app.models.user import User

BASE_TIME = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


def make_asset(index, status=AssetStatus.COMPLETED, url="data:image/png;base64,aGVsbG8=", asset_type=AssetType.IMAGE):
    return GeneratedAsset(
        id=f"gen_{index}",
        user_id="user_123",
        type=asset_type,
        prompt=f"prompt {index}",
        status=status,
        url=url,
        credits_used=25,
        created_at=BASE_TIME + timedelta(minutes=index),
    )


def test_dashboard_for_unknown_user(client):
    response = client.get("/api/dashboard-stats", params={"userId": "ghost"})
    assert response.status_code == 404
    assert response.json()["error"] == "User not found. Please refresh the page."


def test_dashboard_requires_user_id(client):
    assert client.get("/api/dashboard-stats").status_code == 400


def test_dashboard_for_new_user(client, user):
    stats = client.get("/api/dashboard-stats", params={"userId": "user_123"}).json()["stats"]
    assert stats["user"] == {"credits": 100, "name": "Test User", "email": "test@example.com"}
    assert stats["ads"] == {"total": 0, "completed": 0, "failed": 0, "successRate": 0}
    assert stats["saved"] == 0
    assert stats["lastGenerated"] is None
    assert stats["recentAds"] == []


def test_dashboard_counts_and_rounds_success_rate(client, user, seed):
    seed(
        make_asset(1),
        make_asset(2, asset_type=AssetType.VIDEO, url="https://replicate.delivery/v.mp4"),
        make_asset(3, status=AssetStatus.FAILED, url=None),
        SavedAsset(id="saved_1", user_id="user_123", generated_asset_id="gen_1", s3_url="/uploads/images/1.png"),
    )
    response = client.get("/api/dashboard-stats", params={"userId": "user_123"})
    assert response.status_code == 200
    stats = response.json()["stats"]
    # 2 of 3 is 66.67%
    assert stats["ads"] == {"total": 3, "completed": 2, "failed": 1, "successRate": 67}
    assert stats["saved"] == 1
    assert stats["lastGenerated"]["status"] == "FAILED"

    recent = stats["recentAds"]
    assert [ad["id"] for ad in recent] == ["gen_2", "gen_1"]
    assert recent[0]["type"] == "VIDEO"
    assert recent[0]["isSaved"] is False
    assert recent[0]["savedAsset"] is None
    assert recent[1]["isSaved"] is True
    assert recent[1]["savedAsset"] == {"id": "saved_1"}


def test_dashboard_success_rate_rounds_half_up(client, user, seed):
    seed(
        *[make_asset(i) for i in range(1, 8)],
        make_asset(8, status=AssetStatus.FAILED, url=None),
    )
    stats = client.get("/api/dashboard-stats", params={"userId": "user_123"}).json()["stats"]
    # 7 of 8 is 87.5%
    assert stats["ads"]["successRate"] == 88


def test_dashboard_keeps_six_most_recent_completed(client, user, seed):
    seed(
        *[make_asset(i) for i in range(1, 9)],
        make_asset(9, status=AssetStatus.PROCESSING, url=None),
    )
    stats = client.get("/api/dashboard-stats", params={"userId": "user_123"}).json()["stats"]
    assert [ad["id"] for ad in stats["recentAds"]] == [f"gen_{i}" for i in range(8, 2, -1)]
    assert stats["lastGenerated"]["status"] == "PROCESSING"


def test_dashboard_only_counts_own_assets(client, user, seed):
    seed(User(id="user_other", name="Other", credits=10))
    other = make_asset(1)
    other.user_id = "user_other"
    seed(other)
    stats = client.get("/api/dashboard-stats", params={"userId": "user_123"}).json()["stats"]
    assert stats["ads"]["total"] == 0
