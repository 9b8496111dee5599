"""HTTP tests for /api/v1/users: envelopes, cookies, access guard and refresh rotation."""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import delete

from app.core.config import settings
from app.core.database import get_db
from app.main import app
from app.models import User
from app.services.media_store import MediaStoreError, get_media_store
from tests.support import AVATAR, COVER, DatabaseTestCase, add_user, make_media

PREFIX = f"{settings.API_V1_PREFIX}/users"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64

REGISTER_FORM = {
    "fullName": "Ann Lee",
    "email": "ann@x.com",
    "username": "annlee",
    "password": "secret1",
}


class ApiTestCase(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.temp_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.temp_dir, True)
        temp_patch = patch.object(settings, "UPLOAD_TEMP_DIR", str(self.temp_dir))
        temp_patch.start()
        self.addCleanup(temp_patch.stop)

        self.media = make_media(AVATAR, COVER)

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_media_store] = lambda: self.media
        self.addCleanup(app.dependency_overrides.clear)
        self.client = TestClient(app)

    def login(self, username: str = "annlee", password: str = "secret1"):
        return self.client.post(f"{PREFIX}/login", json={"username": username, "password": password})


class TestRegisterEndpoint(ApiTestCase):
    def test_register_returns_201_with_sanitized_user(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/register",
            data=REGISTER_FORM,
            files={"avatar": ("ann.png", PNG, "image/png")},
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        body = resp.json()
        self.assertEqual(body["status"], 201)
        self.assertTrue(body["success"])
        self.assertEqual(body["message"], "User registered successfully")
        user = body["data"]
        self.assertEqual(user["username"], "annlee")
        self.assertEqual(user["fullName"], "Ann Lee")
        self.assertEqual(user["avatarUrl"], AVATAR.url)
        self.assertNotIn("password", user)
        self.assertNotIn("passwordHash", user)
        self.assertNotIn("refreshToken", user)
        self.media.upload.assert_awaited_once()
        self.assertEqual(list(self.temp_dir.iterdir()), [])

    def test_register_with_cover_image(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/register",
            data=REGISTER_FORM,
            files={
                "avatar": ("ann.png", PNG, "image/png"),
                "coverImage": ("cover.png", PNG, "image/png"),
            },
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        self.assertEqual(resp.json()["data"]["coverImageUrl"], COVER.url)

    def test_missing_avatar_is_400_without_upload(self) -> None:
        resp = self.client.post(f"{PREFIX}/register", data=REGISTER_FORM)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Avatar is required")
        self.assertFalse(resp.json()["success"])
        self.media.upload.assert_not_called()

    def test_blank_field_is_400(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/register",
            data={**REGISTER_FORM, "fullName": "   "},
            files={"avatar": ("ann.png", PNG, "image/png")},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "All fields are required")
        self.media.upload.assert_not_called()

    def test_image_without_file_extension_is_accepted(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/register",
            data=REGISTER_FORM,
            files={"avatar": ("blob", PNG, "image/png")},
        )
        self.assertEqual(resp.status_code, 201, resp.text)
        staged = self.media.upload.await_args[0][0]
        self.assertEqual(staged.suffix, ".png")

    def test_missing_field_is_400_all_fields_required(self) -> None:
        form = {key: value for key, value in REGISTER_FORM.items() if key != "email"}
        resp = self.client.post(
            f"{PREFIX}/register",
            data=form,
            files={"avatar": ("ann.png", PNG, "image/png")},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "All fields are required")

    def test_overlong_password_reports_length(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/register",
            data={**REGISTER_FORM, "password": "x" * 129},
            files={"avatar": ("ann.png", PNG, "image/png")},
        )
        self.assertEqual(resp.status_code, 400)
        message = resp.json()["message"]
        self.assertNotEqual(message, "All fields are required")
        self.assertTrue(message.startswith("password:"), message)
        self.assertIn("128", message)
        self.media.upload.assert_not_called()

    def test_non_image_avatar_is_400(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/register",
            data=REGISTER_FORM,
            files={"avatar": ("notes.txt", b"hello", "text/plain")},
        )
        self.assertEqual(resp.status_code, 400)
        self.media.upload.assert_not_called()

    def test_duplicate_is_409_without_upload(self) -> None:
        add_user(self.db)
        resp = self.client.post(
            f"{PREFIX}/register",
            data=REGISTER_FORM,
            files={"avatar": ("ann.png", PNG, "image/png")},
        )
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json(), {
            "status": 409,
            "message": "User already exists",
            "success": False,
            "errors": [],
        })
        self.media.upload.assert_not_called()
        self.assertEqual(list(self.temp_dir.iterdir()), [])

    def test_avatar_upload_failure_is_500(self) -> None:
        self.media.upload.side_effect = [MediaStoreError("Media host unreachable")]
        resp = self.client.post(
            f"{PREFIX}/register",
            data=REGISTER_FORM,
            files={"avatar": ("ann.png", PNG, "image/png")},
        )
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["message"], "Something went wrong while uploading avatar")


class TestLoginEndpoint(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        add_user(self.db)

    def test_login_sets_cookies_and_returns_tokens(self) -> None:
        resp = self.login()
        self.assertEqual(resp.status_code, 200, resp.text)
        data = resp.json()["data"]
        self.assertIn("accessToken", data)
        self.assertIn("refreshToken", data)
        self.assertNotIn("password", data["user"])
        self.assertNotIn("refreshToken", data["user"])
        self.assertEqual(resp.cookies["accessToken"], data["accessToken"])
        self.assertEqual(resp.cookies["refreshToken"], data["refreshToken"])
        set_cookies = resp.headers.get_list("set-cookie")
        self.assertEqual(len(set_cookies), 2)
        for header in set_cookies:
            self.assertIn("HttpOnly", header)
            self.assertNotIn("Secure", header)

    def test_login_with_email(self) -> None:
        resp = self.client.post(f"{PREFIX}/login", json={"email": "ann@x.com", "password": "secret1"})
        self.assertEqual(resp.status_code, 200)

    def test_cookies_are_secure_in_prod(self) -> None:
        with patch.object(settings, "APP_ENV", "prod"):
            resp = self.login()
        for header in resp.headers.get_list("set-cookie"):
            self.assertIn("Secure", header)

    def test_wrong_password_is_401(self) -> None:
        resp = self.login(password="wrong")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["message"], "Invalid credentials")
        self.assertEqual(resp.headers.get("www-authenticate"), "Bearer")

    def test_unknown_user_is_404(self) -> None:
        resp = self.login(username="nobody")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["message"], "User not found")

    def test_missing_identifier_is_400(self) -> None:
        resp = self.client.post(f"{PREFIX}/login", json={"password": "secret1"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "Email or username is required")

    def test_missing_password_is_400(self) -> None:
        resp = self.client.post(f"{PREFIX}/login", json={"username": "annlee"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["message"], "All fields are required")


class TestAccessGuard(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        add_user(self.db)
        self.access_token = self.login().json()["data"]["accessToken"]
        self.client.cookies.clear()

    def test_bearer_header_is_accepted(self) -> None:
        resp = self.client.get(
            f"{PREFIX}/current-user",
            headers={"Authorization": f"Bearer {self.access_token}"},
        )
        self.assertEqual(resp.status_code, 200)
        user = resp.json()["data"]
        self.assertEqual(user["username"], "annlee")
        self.assertNotIn("refreshToken", user)

    def test_cookie_is_accepted(self) -> None:
        self.client.cookies.set("accessToken", self.access_token)
        resp = self.client.get(f"{PREFIX}/current-user")
        self.assertEqual(resp.status_code, 200)

    def test_cookie_takes_precedence_over_header(self) -> None:
        self.client.cookies.set("accessToken", "garbage")
        resp = self.client.get(
            f"{PREFIX}/current-user",
            headers={"Authorization": f"Bearer {self.access_token}"},
        )
        self.assertEqual(resp.status_code, 401)

    def test_missing_token_is_401(self) -> None:
        resp = self.client.get(f"{PREFIX}/current-user")
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["message"], "Unauthorized, token not found")

    def test_invalid_token_is_401(self) -> None:
        resp = self.client.get(
            f"{PREFIX}/current-user", headers={"Authorization": "Bearer not-a-token"}
        )
        self.assertEqual(resp.status_code, 401)

    def test_token_for_deleted_user_is_401(self) -> None:
        self.db.execute(delete(User))
        self.db.commit()
        resp = self.client.get(
            f"{PREFIX}/current-user",
            headers={"Authorization": f"Bearer {self.access_token}"},
        )
        self.assertEqual(resp.status_code, 401)


class TestRefreshAndLogout(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        add_user(self.db)
        self.tokens = self.login().json()["data"]

    def test_refresh_with_cookie_rotates_tokens(self) -> None:
        resp = self.client.post(f"{PREFIX}/refresh-token")
        self.assertEqual(resp.status_code, 200, resp.text)
        data = resp.json()["data"]
        self.assertNotEqual(data["refreshToken"], self.tokens["refreshToken"])
        self.assertEqual(resp.cookies["refreshToken"], data["refreshToken"])

    def test_refresh_with_body(self) -> None:
        self.client.cookies.clear()
        resp = self.client.post(
            f"{PREFIX}/refresh-token", json={"refreshToken": self.tokens["refreshToken"]}
        )
        self.assertEqual(resp.status_code, 200, resp.text)

    def test_superseded_refresh_token_is_401(self) -> None:
        self.assertEqual(self.client.post(f"{PREFIX}/refresh-token").status_code, 200)
        self.client.cookies.clear()
        resp = self.client.post(
            f"{PREFIX}/refresh-token", json={"refreshToken": self.tokens["refreshToken"]}
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json()["message"], "Refresh token is expired or used")

    def test_refresh_without_token_is_401(self) -> None:
        self.client.cookies.clear()
        resp = self.client.post(f"{PREFIX}/refresh-token")
        self.assertEqual(resp.status_code, 401)

    def test_logout_clears_cookies_and_stored_token(self) -> None:
        resp = self.client.post(f"{PREFIX}/logout")
        self.assertEqual(resp.status_code, 200, resp.text)
        set_cookies = resp.headers.get_list("set-cookie")
        self.assertTrue(any(h.startswith("accessToken=") and "Max-Age=0" in h for h in set_cookies))
        self.assertTrue(any(h.startswith("refreshToken=") and "Max-Age=0" in h for h in set_cookies))

        self.client.cookies.clear()
        resp = self.client.post(
            f"{PREFIX}/refresh-token", json={"refreshToken": self.tokens["refreshToken"]}
        )
        self.assertEqual(resp.status_code, 401)


class TestProfileEndpoints(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        add_user(self.db)
        self.login()

    def test_change_password(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/change-password",
            json={"oldPassword": "secret1", "newPassword": "secret2"},
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        self.client.cookies.clear()
        self.assertEqual(self.login(password="secret2").status_code, 200)

    def test_change_password_wrong_old(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/change-password",
            json={"oldPassword": "nope", "newPassword": "secret2"},
        )
        self.assertEqual(resp.status_code, 401)

    def test_change_password_blank_new_is_400(self) -> None:
        resp = self.client.post(
            f"{PREFIX}/change-password",
            json={"oldPassword": "secret1", "newPassword": "  "},
        )
        self.assertEqual(resp.status_code, 400)

    def test_update_account(self) -> None:
        resp = self.client.patch(
            f"{PREFIX}/update-account",
            json={"fullName": "Ann B. Lee", "email": "ANN.B@x.com"},
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        data = resp.json()["data"]
        self.assertEqual(data["fullName"], "Ann B. Lee")
        self.assertEqual(data["email"], "ann.b@x.com")

    def test_update_avatar(self) -> None:
        self.media.upload.side_effect = [COVER]
        resp = self.client.patch(
            f"{PREFIX}/avatar",
            files={"avatar": ("new.png", PNG, "image/png")},
        )
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["data"]["avatarUrl"], COVER.url)
        self.media.delete.assert_not_called()

    def test_update_cover_image_requires_file(self) -> None:
        resp = self.client.patch(f"{PREFIX}/cover-image")
        self.assertEqual(resp.status_code, 400)

    def test_protected_routes_require_token(self) -> None:
        self.client.cookies.clear()
        self.assertEqual(self.client.post(f"{PREFIX}/logout").status_code, 401)
        self.assertEqual(
            self.client.patch(
                f"{PREFIX}/update-account", json={"fullName": "X", "email": "x@x.com"}
            ).status_code,
            401,
        )


class TestOpenApi(ApiTestCase):
    def test_account_routes_document_error_envelope(self) -> None:
        schema = self.client.get("/openapi.json").json()
        self.assertIn("ErrorResponse", schema["components"]["schemas"])
        login_responses = schema["paths"][f"{PREFIX}/login"]["post"]["responses"]
        for code in ("401", "404", "409", "500"):
            self.assertEqual(
                login_responses[code]["content"]["application/json"]["schema"],
                {"$ref": "#/components/schemas/ErrorResponse"},
            )


class TestHealth(ApiTestCase):
    def test_health_reports_database_and_media(self) -> None:
        resp = self.client.get(f"{settings.API_V1_PREFIX}/health/")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["database"], "connected")
        self.assertIn(body["media_store"], ("configured", "not_configured"))


if __name__ == "__main__":
    unittest.main()
