"""
Pilbum Backend — API Integration Tests
========================================

What we test (full stack: routes → services → SQLite → local storage):
    ✅ Auth: login, forced password change, /me, logout, wrong credentials
    ✅ Photos: upload, list visibility, detail, edit, delete, batch delete
    ✅ /uploads serving of stored renditions
    ✅ User administration and role checks
    ✅ Site settings, storage status, setup endpoints, system report
    ✅ Error envelope: {"error", "message", "details", "request_id"}

Each test gets a fresh schema with the seeded admin (see conftest.database);
admin_client has already completed the first-login password change.
"""

import uuid
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import delete

from pilbum.config import settings
from pilbum.database import Base, async_session_factory
from pilbum.models.photo import Photo
from pilbum.services import version_service
from pilbum.services.storage import reset_storage

NEW_ADMIN_PASSWORD = "correct-horse-battery"


async def upload(client, jpeg: bytes, title: str = "", video: bytes = None, **form):
    files = {"image": ("IMG_0001.jpg", jpeg, "image/jpeg")}
    if video is not None:
        files["video"] = ("IMG_0001.MOV", video, "video/quicktime")
    data = {"title": title, **form}
    return await client.post("/api/upload", files=files, data=data)


async def login(client, username: str, password: str):
    return await client.post("/api/auth/login", json={"username": username, "password": password})


# ══════════════════════════════════════════════════════════════════════════
# Auth
# ══════════════════════════════════════════════════════════════════════════

class TestAuthFlow:

    @pytest.mark.asyncio
    async def test_first_login_requires_password_change(self, test_client):
        response = await login(test_client, "admin", "admin")

        assert response.status_code == 200
        assert response.json() == {"success": True, "mustChangePassword": True, "role": "admin"}
        assert "pilbum_session" in response.headers["set-cookie"]
        assert "httponly" in response.headers["set-cookie"].lower()

        me = await test_client.get("/api/auth/me")
        assert me.status_code == 200
        assert me.json()["username"] == "admin"
        assert me.json()["mustChangePassword"] is True

    @pytest.mark.asyncio
    async def test_password_change_clears_flag(self, test_client):
        await login(test_client, "admin", "admin")

        response = await test_client.post(
            "/api/auth/change-password", json={"newPassword": NEW_ADMIN_PASSWORD}
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}

        me = await test_client.get("/api/auth/me")
        assert me.json()["mustChangePassword"] is False

        await test_client.post("/api/auth/logout")
        assert (await login(test_client, "admin", "admin")).status_code == 401
        relogin = await login(test_client, "admin", NEW_ADMIN_PASSWORD)
        assert relogin.json()["mustChangePassword"] is False

    @pytest.mark.asyncio
    async def test_change_requires_current_password_afterwards(self, admin_client):
        response = await admin_client.post(
            "/api/auth/change-password", json={"newPassword": "yet-another-password"}
        )
        assert response.status_code == 400
        assert response.json()["message"] == "请输入当前密码"

        response = await admin_client.post(
            "/api/auth/change-password",
            json={"currentPassword": "wrong-password", "newPassword": "yet-another-password"},
        )
        assert response.status_code == 401
        assert response.json()["message"] == "当前密码错误"

    @pytest.mark.asyncio
    async def test_short_new_password(self, test_client):
        await login(test_client, "admin", "admin")
        response = await test_client.post("/api/auth/change-password", json={"newPassword": "short"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["message"] == "新密码至少需要 8 个字符"

    @pytest.mark.asyncio
    async def test_wrong_credentials(self, test_client):
        response = await login(test_client, "admin", "nope")

        assert response.status_code == 401
        body = response.json()
        assert body["error"] == "unauthorized"
        assert body["message"] == "用户名或密码错误"
        assert body["request_id"]
        assert response.headers["X-Request-ID"] == body["request_id"]

    @pytest.mark.asyncio
    async def test_missing_fields(self, test_client):
        response = await test_client.post("/api/auth/login", json={"username": "admin"})
        assert response.status_code == 400
        assert response.json()["message"] == "密码不能为空"

    @pytest.mark.asyncio
    async def test_logout_clears_session(self, admin_client):
        response = await admin_client.post("/api/auth/logout")
        assert response.status_code == 200

        me = await admin_client.get("/api/auth/me")
        assert me.status_code == 401
        assert me.json()["message"] == "请先登录"

    @pytest.mark.asyncio
    async def test_tampered_cookie_is_anonymous(self, test_client):
        test_client.cookies.set("pilbum_session", "forged.token.value")
        assert (await test_client.get("/api/auth/me")).status_code == 401


# ══════════════════════════════════════════════════════════════════════════
# Photos
# ══════════════════════════════════════════════════════════════════════════

class TestPhotoApi:

    @pytest.mark.asyncio
    async def test_upload_and_fetch(self, admin_client, jpeg_factory):
        response = await upload(admin_client, jpeg_factory(3000, 2000), title="Mountains", description="Alps")

        assert response.status_code == 201
        photo = response.json()["photo"]
        assert photo["title"] == "Mountains"
        assert photo["description"] == "Alps"
        assert (photo["width"], photo["height"]) == (2400, 1600)
        assert photo["imageUrl"] == f"/uploads/photos/{photo['id']}/full.jpg"
        assert photo["thumbnailUrl"] == f"/uploads/photos/{photo['id']}/thumb.jpg"
        assert photo["blurDataUrl"].startswith("data:image/jpeg;base64,")
        assert photo["isLivePhoto"] is False
        assert photo["originalFilename"] == "IMG_0001.jpg"
        assert photo["isVisible"] is True

        detail = await admin_client.get(f"/api/photos/{photo['id']}")
        assert detail.status_code == 200
        assert detail.json()["photo"]["id"] == photo["id"]

    @pytest.mark.asyncio
    async def test_upload_live_photo(self, admin_client, sample_jpeg):
        response = await upload(admin_client, sample_jpeg, video=b"\x00\x00\x00\x14ftypqt  " + b"\x00" * 64)

        photo = response.json()["photo"]
        assert photo["isLivePhoto"] is True
        assert photo["livePhotoVideoUrl"] == f"/uploads/photos/{photo['id']}/live.mov"

        video = await admin_client.get(photo["livePhotoVideoUrl"])
        assert video.status_code == 200
        assert video.headers["content-type"] == "video/quicktime"

    @pytest.mark.asyncio
    async def test_upload_requires_login(self, test_client, sample_jpeg):
        response = await upload(test_client, sample_jpeg)
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_upload_without_image(self, admin_client):
        response = await admin_client.post("/api/upload", data={"title": "nothing"})
        assert response.status_code == 400
        assert response.json()["message"] == "没有提供图片文件"

    @pytest.mark.asyncio
    async def test_upload_unreadable_image(self, admin_client):
        response = await upload(admin_client, b"this is not a picture")
        assert response.status_code == 400
        assert response.json()["message"] == "无法识别的图片文件"

    @pytest.mark.asyncio
    async def test_uploaded_files_are_served(self, admin_client, sample_jpeg):
        photo = (await upload(admin_client, sample_jpeg)).json()["photo"]

        response = await admin_client.get(photo["imageUrl"])

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert "immutable" in response.headers["cache-control"]
        assert response.content[:2] == b"\xff\xd8"

    @pytest.mark.asyncio
    async def test_missing_upload_file(self, test_client):
        response = await test_client.get(f"/uploads/photos/{uuid.uuid4()}/full.jpg")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_uploads_not_served_for_remote_provider(self, test_client, monkeypatch):
        monkeypatch.setattr(settings, "storage_provider", "s3")
        monkeypatch.setattr(settings, "s3_bucket", "")
        reset_storage()
        try:
            response = await test_client.get("/uploads/photos/x/full.jpg")
        finally:
            reset_storage()

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_list_hides_hidden_photos_from_public(self, admin_client, sample_jpeg):
        visible = (await upload(admin_client, sample_jpeg, title="public")).json()["photo"]
        hidden = (await upload(admin_client, sample_jpeg, title="private")).json()["photo"]
        response = await admin_client.patch(f"/api/photos/{hidden['id']}", json={"isVisible": False})
        assert response.status_code == 200

        dashboard = await admin_client.get("/api/photos", params={"includeHidden": "true"})
        assert dashboard.json()["pagination"]["total"] == 2
        assert dashboard.headers["X-Total-Count"] == "2"

        await admin_client.post("/api/auth/logout")
        public = await admin_client.get("/api/photos", params={"includeHidden": "true"})
        ids = [p["id"] for p in public.json()["photos"]]
        assert ids == [visible["id"]]
        assert public.json()["pagination"] == {"page": 1, "limit": 20, "total": 1, "totalPages": 1}

        assert (await admin_client.get(f"/api/photos/{hidden['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_list_order_and_paging(self, admin_client, sample_jpeg):
        first = (await upload(admin_client, sample_jpeg, title="first")).json()["photo"]
        second = (await upload(admin_client, sample_jpeg, title="second")).json()["photo"]
        newest = (await upload(admin_client, sample_jpeg, title="newest")).json()["photo"]
        await admin_client.patch(f"/api/photos/{first['id']}", json={"sortOrder": 10})

        response = await admin_client.get("/api/photos", params={"limit": 2})
        titles = [p["title"] for p in response.json()["photos"]]
        assert titles == ["first", "newest"]
        assert response.json()["pagination"]["totalPages"] == 2

        page_two = await admin_client.get("/api/photos", params={"limit": 2, "page": 2})
        assert [p["id"] for p in page_two.json()["photos"]] == [second["id"]]

    @pytest.mark.asyncio
    async def test_list_limit_validation(self, test_client):
        response = await test_client.get("/api/photos", params={"limit": 500})
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_edit_metadata(self, admin_client, sample_jpeg):
        photo = (await upload(admin_client, sample_jpeg, title="old")).json()["photo"]

        response = await admin_client.patch(
            f"/api/photos/{photo['id']}",
            json={
                "title": "new",
                "cameraMake": "Fujifilm",
                "latitude": 35.6586,
                "longitude": 139.7454,
                "takenAt": "2024-04-01T06:30:00Z",
            },
        )

        assert response.status_code == 200
        updated = response.json()["photo"]
        assert updated["title"] == "new"
        assert updated["cameraMake"] == "Fujifilm"
        assert updated["latitude"] == 35.6586
        assert updated["takenAt"].startswith("2024-04-01T06:30:00")
        assert updated["description"] == ""

    @pytest.mark.asyncio
    async def test_edit_rejects_bad_latitude(self, admin_client, sample_jpeg):
        photo = (await upload(admin_client, sample_jpeg)).json()["photo"]

        response = await admin_client.patch(f"/api/photos/{photo['id']}", json={"latitude": 120})

        assert response.status_code == 400
        assert response.json()["message"] == "纬度必须在 -90 到 90 之间"
        assert response.json()["details"] == {"field": "latitude"}

    @pytest.mark.asyncio
    async def test_unknown_and_malformed_ids(self, admin_client):
        for photo_id in (str(uuid.uuid4()), "definitely-not-a-uuid"):
            response = await admin_client.get(f"/api/photos/{photo_id}")
            assert response.status_code == 404
            assert response.json()["message"] == "照片不存在"

    @pytest.mark.asyncio
    async def test_delete_removes_row_and_files(self, admin_client, sample_jpeg):
        photo = (await upload(admin_client, sample_jpeg)).json()["photo"]

        response = await admin_client.delete(f"/api/photos/{photo['id']}")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert (await admin_client.get(f"/api/photos/{photo['id']}")).status_code == 404
        assert (await admin_client.get(photo["imageUrl"])).status_code == 404

    @pytest.mark.asyncio
    async def test_batch_delete(self, admin_client, sample_jpeg):
        ids = [(await upload(admin_client, sample_jpeg)).json()["photo"]["id"] for _ in range(3)]

        response = await admin_client.post(
            "/api/photos/batch-delete", json={"ids": ids[:2] + [str(uuid.uuid4())]}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "deleted": 2}
        remaining = await admin_client.get("/api/photos")
        assert [p["id"] for p in remaining.json()["photos"]] == [ids[2]]

    @pytest.mark.asyncio
    async def test_batch_delete_validation(self, admin_client):
        response = await admin_client.post("/api/photos/batch-delete", json={"ids": []})
        assert response.status_code == 400
        assert response.json()["message"] == "至少选择一张照片"

        response = await admin_client.post("/api/photos/batch-delete", json={"ids": [str(uuid.uuid4())]})
        assert response.status_code == 404
        assert response.json()["message"] == "没有找到要删除的照片"

    @pytest.mark.asyncio
    async def test_management_requires_login(self, test_client):
        photo_id = str(uuid.uuid4())
        assert (await test_client.patch(f"/api/photos/{photo_id}", json={"title": "x"})).status_code == 401
        assert (await test_client.delete(f"/api/photos/{photo_id}")).status_code == 401
        assert (await test_client.post("/api/photos/batch-delete", json={"ids": [photo_id]})).status_code == 401


# ══════════════════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════════════════

class TestUserApi:

    @pytest.mark.asyncio
    async def test_create_list_update_delete(self, admin_client):
        response = await admin_client.post(
            "/api/admin/users",
            json={"username": "bob", "password": "secret", "role": "user", "displayName": "Bob"},
        )
        assert response.status_code == 201
        bob = response.json()["user"]
        assert bob["mustChangePassword"] is True
        assert "passwordHash" not in bob

        listing = await admin_client.get("/api/admin/users")
        usernames = [u["username"] for u in listing.json()["users"]]
        assert set(usernames) == {"admin", "bob"}

        response = await admin_client.patch(f"/api/admin/users/{bob['id']}", json={"role": "admin"})
        assert response.json()["user"]["role"] == "admin"

        response = await admin_client.delete(f"/api/admin/users/{bob['id']}")
        assert response.status_code == 200
        assert (await admin_client.patch(f"/api/admin/users/{bob['id']}", json={})).status_code == 404

    @pytest.mark.asyncio
    async def test_duplicate_username(self, admin_client):
        response = await admin_client.post("/api/admin/users", json={"username": "admin", "password": "secret"})
        assert response.status_code == 409
        assert response.json()["message"] == "用户名已存在"

    @pytest.mark.asyncio
    async def test_invalid_username(self, admin_client):
        response = await admin_client.post("/api/admin/users", json={"username": "bad name", "password": "secret"})
        assert response.status_code == 400
        assert response.json()["message"] == "用户名只能包含字母、数字和下划线"

    @pytest.mark.asyncio
    async def test_cannot_delete_self(self, admin_client):
        me = (await admin_client.get("/api/auth/me")).json()
        response = await admin_client.delete(f"/api/admin/users/{me['userId']}")
        assert response.status_code == 400
        assert response.json()["message"] == "不能删除自己的账户"

    @pytest.mark.asyncio
    async def test_regular_user_is_forbidden(self, admin_client, sample_jpeg):
        await admin_client.post("/api/admin/users", json={"username": "carol", "password": "secret"})
        await admin_client.post("/api/auth/logout")

        response = await login(admin_client, "carol", "secret")
        assert response.json() == {"success": True, "mustChangePassword": True, "role": "user"}

        forbidden = await admin_client.get("/api/admin/users")
        assert forbidden.status_code == 403
        assert forbidden.json()["error"] == "forbidden"
        assert (await admin_client.put("/api/admin/settings", json={"key": "site_name", "value": "x"})).status_code == 403

        # Regular users still manage photos
        assert (await upload(admin_client, sample_jpeg)).status_code == 201

    @pytest.mark.asyncio
    async def test_requires_login(self, test_client):
        assert (await test_client.get("/api/admin/users")).status_code == 401


# ══════════════════════════════════════════════════════════════════════════
# Site Settings, Setup & System
# ══════════════════════════════════════════════════════════════════════════

class TestSiteApi:

    @pytest.mark.asyncio
    async def test_public_settings_defaults(self, test_client):
        response = await test_client.get("/api/settings")
        assert response.status_code == 200
        assert response.json() == {"settings": {"show_login_button": "false", "site_name": "Pilbum"}}

    @pytest.mark.asyncio
    async def test_update_setting(self, admin_client):
        response = await admin_client.put("/api/admin/settings", json={"key": "show_login_button", "value": True})
        assert response.status_code == 200

        await admin_client.put("/api/admin/settings", json={"key": "site_name", "value": "Family Album"})

        public = await admin_client.get("/api/settings")
        assert public.json()["settings"] == {"show_login_button": "true", "site_name": "Family Album"}

        stored = await admin_client.get("/api/admin/settings")
        assert stored.json()["settings"]["site_name"] == "Family Album"

    @pytest.mark.asyncio
    async def test_update_setting_missing_value(self, admin_client):
        response = await admin_client.put("/api/admin/settings", json={"key": "site_name"})
        assert response.status_code == 400
        assert response.json()["message"] == "缺少 key 或 value"

    @pytest.mark.asyncio
    async def test_storage_config(self, test_client):
        response = await test_client.get("/api/config/storage")
        assert response.json() == {"configured": True}

    @pytest.mark.asyncio
    async def test_version_endpoint(self, test_client):
        version_service.clear_cache()
        release = {"tag_name": "v99.0.0", "html_url": "https://example.com/r", "name": "Big one"}
        with patch.object(version_service, "_fetch_latest_release", AsyncMock(return_value=release)):
            response = await test_client.get("/api/version", params={"force": "true"})
        version_service.clear_cache()

        assert response.status_code == 200
        body = response.json()
        assert body["hasUpdate"] is True
        assert body["latestVersion"] == "99.0.0"
        assert body["error"] is None

    @pytest.mark.asyncio
    async def test_version_endpoint_failure(self, test_client):
        version_service.clear_cache()
        fetch = AsyncMock(side_effect=httpx.ConnectError("offline"))
        with patch.object(version_service, "_fetch_latest_release", fetch):
            response = await test_client.get("/api/version")

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to check for updates"
        assert response.json()["currentVersion"]


class TestSetupApi:

    @pytest.mark.asyncio
    async def test_fresh_database_setup(self, test_client, database):
        async with database.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        status = await test_client.get("/api/admin/db")
        assert status.json() == {"ready": False, "message": "数据库尚未初始化，需要创建表结构"}

        # Public pages still render before setup
        assert (await test_client.get("/api/photos")).json()["photos"] == []
        assert (await test_client.get("/api/settings")).status_code == 200
        login_response = await login(test_client, "admin", "admin")
        assert login_response.status_code == 503
        assert login_response.json()["error"] == "database_not_ready"

        response = await test_client.post("/api/admin/db")
        assert response.status_code == 200
        assert response.json()["message"] == "数据库初始化成功，默认管理员账户：admin / admin"

        assert (await test_client.get("/api/admin/db")).json()["ready"] is True
        again = await test_client.post("/api/admin/db")
        assert again.json()["message"] == "数据库已初始化，无需重复操作"
        assert (await login(test_client, "admin", "admin")).status_code == 200

    @pytest.mark.asyncio
    async def test_setup_never_echoes_configured_password(self, test_client, database, monkeypatch):
        monkeypatch.setattr(settings, "admin_default_password", "S3cret-Operator-Pw")
        async with database.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        response = await test_client.post("/api/admin/db")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert "S3cret-Operator-Pw" not in response.text
        assert (await login(test_client, "admin", "S3cret-Operator-Pw")).status_code == 200


class TestAdminToolsApi:

    @pytest.mark.asyncio
    async def test_system_report(self, admin_client, sample_jpeg):
        await upload(admin_client, sample_jpeg)

        response = await admin_client.get("/api/admin/system")

        assert response.status_code == 200
        body = response.json()
        assert body["database"]["provider"] == "sqlite"
        assert body["database"]["config"]["type"] == "SQLite"
        assert body["database"]["records"] == {"photos": 1, "users": 1, "settings": 0}
        assert body["database"]["size"] > 0
        assert body["storage"]["provider"] == "local"
        assert body["storage"]["photoStorageSize"] == len(sample_jpeg)
        assert body["environment"]["pythonVersion"]
        assert body["siteName"] == settings.site_name

    @pytest.mark.asyncio
    async def test_system_report_uses_stored_site_name(self, admin_client):
        response = await admin_client.put("/api/admin/settings", json={"key": "site_name", "value": "Family Album"})
        assert response.status_code == 200

        body = (await admin_client.get("/api/admin/system")).json()
        assert body["siteName"] == "Family Album"

    @pytest.mark.asyncio
    async def test_system_report_requires_login(self, test_client):
        assert (await test_client.get("/api/admin/system")).status_code == 401

    @pytest.mark.asyncio
    async def test_recover_photos(self, admin_client, sample_jpeg):
        photo = (await upload(admin_client, sample_jpeg, title="keep me")).json()["photo"]

        # Row lost, files still on disk
        async with async_session_factory() as session:
            await session.execute(delete(Photo).where(Photo.id == uuid.UUID(photo["id"])))
            await session.commit()
        assert (await admin_client.get(f"/api/photos/{photo['id']}")).status_code == 404

        response = await admin_client.post("/api/admin/recover-photos")

        assert response.status_code == 200
        body = response.json()
        assert photo["id"] in body["details"]["recovered"]
        restored = (await admin_client.get(f"/api/photos/{photo['id']}")).json()["photo"]
        assert restored["imageUrl"] == photo["imageUrl"]
        assert restored["title"] == ""

        again = await admin_client.post("/api/admin/recover-photos")
        assert photo["id"] not in again.json()["details"]["recovered"]


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["storage"] == "configured"
