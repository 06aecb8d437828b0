"""
tests/test_api_routes.py — HTTP API Integration Tests
=======================================================
Exercises the routers through TestClient against in-memory SQLite, a fake
S3 client and a mocked identity provider.
"""

from __future__ import annotations

from datetime import date, timedelta
from urllib.parse import parse_qs, urlsplit

import pytest

from onsweb.database.models import UserRole
from conftest import TEST_PASSWORD, auth_header, make_user, png_bytes


def _event_body(**overrides) -> dict:
    return {
        "title": "Harvest Supper",
        "description": "<p>Long tables on the green</p>",
        "date": (date.today() + timedelta(days=10)).isoformat(),
        "time": "18:30",
        "location": "Village Green",
        **overrides,
    }


# ===========================================================================
# Health & envelope
# ===========================================================================
class TestEnvelope:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "ok"
        assert body["data"]["storage_configured"] is True
        assert "timestamp" in body

    def test_health_reports_missing_storage(self, client):
        from onsweb.api.deps import get_storage
        from onsweb.api.main import app
        from onsweb.services.storage import ObjectStorage

        app.dependency_overrides[get_storage] = lambda: ObjectStorage(None, None)
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["data"]["storage_configured"] is False

    def test_missing_content_uses_error_envelope(self, client):
        resp = client.get("/api/content/missing-id")
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "CONTENT_NOT_FOUND"

    def test_validation_error_lists_fields(self, client, editor):
        resp = client.post(
            "/api/content",
            json={"type": "news", "title": "", "body": "x", "priority": 42},
            headers=auth_header(editor),
        )
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert {d["field"] for d in error["details"]} == {"title", "priority"}


# ===========================================================================
# Auth
# ===========================================================================
class TestAuthRoutes:
    def test_login_returns_tokens_and_sets_cookies(self, client, member):
        resp = client.post(
            "/api/auth/login", json={"email": member.email, "password": TEST_PASSWORD}
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user"]["email"] == member.email
        assert data["tokens"]["access_token"]
        assert "access_token" in resp.cookies
        assert "refresh_token" in resp.cookies

    def test_cookie_session_reaches_profile(self, client, member):
        client.post("/api/auth/login", json={"email": member.email, "password": TEST_PASSWORD})
        resp = client.get("/api/auth/profile")
        assert resp.status_code == 200
        assert resp.json()["data"]["id"] == member.id

    def test_profile_without_token(self, client):
        resp = client.get("/api/auth/profile")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "MISSING_TOKEN"

    def test_garbage_token_rejected(self, client):
        resp = client.get("/api/auth/profile", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_TOKEN"

    def test_wrong_password(self, client, member):
        resp = client.post(
            "/api/auth/login", json={"email": member.email, "password": "wrong-one1"}
        )
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_register_is_pending_approval(self, client):
        resp = client.post(
            "/api/auth/register",
            json={"email": "new@example.org", "password": "abcdef12", "name": "New Person"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["data"]["user"]["is_active"] is False
        assert "pending approval" in body["message"]

    def test_register_rejects_weak_password(self, client):
        resp = client.post(
            "/api/auth/register",
            json={"email": "new@example.org", "password": "abcdefgh", "name": "New Person"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["details"][0]["field"] == "password"

    def test_refresh_from_cookie(self, client, member):
        client.post("/api/auth/login", json={"email": member.email, "password": TEST_PASSWORD})
        resp = client.post("/api/auth/refresh")
        assert resp.status_code == 200
        assert resp.json()["data"]["tokens"]["refresh_token"]

    def test_refresh_without_token(self, client):
        resp = client.post("/api/auth/refresh")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "MISSING_TOKEN"

    def test_update_profile(self, client, member):
        resp = client.put(
            "/api/auth/profile", json={"name": "Renamed"}, headers=auth_header(member)
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["name"] == "Renamed"

    def test_logout_clears_cookies(self, client, member):
        client.post("/api/auth/login", json={"email": member.email, "password": TEST_PASSWORD})
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert client.get("/api/auth/profile").status_code == 401


class TestSocialLoginRoutes:
    def _start(self, client, provider: str = "google") -> str:
        resp = client.get(f"/api/auth/login/{provider}")
        assert resp.status_code == 200
        auth_url = resp.json()["data"]["auth_url"]
        return parse_qs(urlsplit(auth_url).query)["state"][0]

    def test_login_returns_consent_url(self, client):
        resp = client.get("/api/auth/login/facebook")
        data = resp.json()["data"]
        assert data["provider"] == "facebook"
        assert data["auth_url"].startswith("https://workos.test/")

    def test_unknown_provider(self, client):
        resp = client.get("/api/auth/login/myspace")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_PROVIDER"

    def test_callback_creates_user_and_redirects(self, client):
        state = self._start(client)
        resp = client.get(
            "/api/auth/callback",
            params={"code": "good-code", "state": state},
            follow_redirects=False,
        )
        assert resp.status_code in (302, 307)
        location = urlsplit(resp.headers["location"])
        assert f"{location.scheme}://{location.netloc}" == "http://frontend.test"
        assert parse_qs(location.query) == {"auth": ["success"], "new_user": ["true"]}
        assert "access_token" in resp.cookies

    def test_state_is_single_use(self, client):
        state = self._start(client)
        client.get(
            "/api/auth/callback",
            params={"code": "good-code", "state": state},
            follow_redirects=False,
        )
        again = client.get(
            "/api/auth/callback",
            params={"code": "good-code", "state": state},
            follow_redirects=False,
        )
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "INVALID_STATE"

    def test_rejected_code_redirects_with_error(self, client):
        state = self._start(client)
        resp = client.get(
            "/api/auth/callback",
            params={"code": "bad-code", "state": state},
            follow_redirects=False,
        )
        assert resp.status_code in (302, 307)
        assert parse_qs(urlsplit(resp.headers["location"]).query)["auth"] == ["error"]

    @pytest.mark.parametrize(
        ("redirect_uri", "expected"),
        [
            ("http://frontend.test/dashboard", "http://frontend.test/dashboard"),
            ("http://frontend.test.evil.com/steal", "http://frontend.test"),
            ("https://frontend.test/dashboard", "http://frontend.test"),
        ],
    )
    def test_callback_only_follows_same_origin_redirect(self, client, redirect_uri, expected):
        resp = client.get("/api/auth/login/google", params={"redirect_uri": redirect_uri})
        auth_url = resp.json()["data"]["auth_url"]
        state = parse_qs(urlsplit(auth_url).query)["state"][0]

        resp = client.get(
            "/api/auth/callback",
            params={"code": "good-code", "state": state},
            follow_redirects=False,
        )
        location = resp.headers["location"]
        assert location.split("?", 1)[0] == expected

    def test_missing_code(self, client):
        resp = client.get("/api/auth/callback", params={"state": "x"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "MISSING_CODE"


# ===========================================================================
# Content
# ===========================================================================
class TestContentRoutes:
    def test_editor_creates_and_anyone_reads(self, client, editor):
        resp = client.post(
            "/api/content",
            json={"type": "news", "title": "Roof Fund", "body": "<p>We did it</p>"},
            headers=auth_header(editor),
        )
        assert resp.status_code == 201
        created = resp.json()["data"]
        assert created["slug"] == "roof-fund"

        fetched = client.get(f"/api/content/{created['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["data"]["title"] == "Roof Fund"

    def test_member_cannot_create(self, client, member):
        resp = client.post(
            "/api/content",
            json={"type": "news", "title": "Nope", "body": "x"},
            headers=auth_header(member),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"

    def test_anonymous_cannot_create(self, client):
        resp = client.post("/api/content", json={"type": "news", "title": "Nope", "body": "x"})
        assert resp.status_code == 401

    def test_pagination_block(self, client, editor):
        headers = auth_header(editor)
        for n in range(12):
            client.post(
                "/api/content",
                json={"type": "news", "title": f"Post {n}", "body": "x"},
                headers=headers,
            )
        resp = client.get("/api/content", params={"page": 2, "limit": 5})
        body = resp.json()
        assert len(body["data"]) == 5
        assert body["pagination"] == {
            "page": 2, "limit": 5, "total": 12, "total_pages": 3,
            "has_next": True, "has_prev": True,
        }

    def test_update_and_delete(self, client, editor):
        headers = auth_header(editor)
        created = client.post(
            "/api/content",
            json={"type": "announcement", "title": "Draft", "body": "x"},
            headers=headers,
        ).json()["data"]

        updated = client.put(
            f"/api/content/{created['id']}", json={"is_published": True}, headers=headers
        )
        assert updated.json()["data"]["is_published"] is True
        assert updated.json()["data"]["title"] == "Draft"

        deleted = client.delete(f"/api/content/{created['id']}", headers=headers)
        assert deleted.status_code == 200
        assert client.get(f"/api/content/{created['id']}").status_code == 404


# ===========================================================================
# Events
# ===========================================================================
class TestEventRoutes:
    def _create(self, client, editor, **overrides) -> dict:
        resp = client.post("/api/events", json=_event_body(**overrides), headers=auth_header(editor))
        assert resp.status_code == 201
        return resp.json()["data"]

    def test_register_then_duplicate_conflicts(self, client, editor):
        event = self._create(client, editor)
        attendee = {"name": "Pat Guest", "email": "pat@example.org"}

        first = client.post(f"/api/events/{event['id']}/register", json=attendee)
        assert first.status_code == 201
        assert first.json()["data"]["status"] == "confirmed"

        second = client.post(f"/api/events/{event['id']}/register", json=attendee)
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "ALREADY_REGISTERED"

    def test_full_event(self, client, editor):
        event = self._create(client, editor, max_participants=1)
        client.post(
            f"/api/events/{event['id']}/register",
            json={"name": "First In", "email": "first@example.org"},
        )
        resp = client.post(
            f"/api/events/{event['id']}/register",
            json={"name": "Too Late", "email": "late@example.org"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "EVENT_FULL"

    def test_signed_in_registration_is_linked(self, client, editor, member):
        event = self._create(client, editor)
        resp = client.post(
            f"/api/events/{event['id']}/register",
            json={"name": member.name, "email": member.email},
            headers=auth_header(member),
        )
        assert resp.json()["data"]["user_id"] == member.id

    def test_registrations_visible_to_author_only(self, client, editor, member):
        event = self._create(client, editor)
        client.post(
            f"/api/events/{event['id']}/register",
            json={"name": "Pat Guest", "email": "pat@example.org"},
        )
        mine = client.get(
            f"/api/events/{event['id']}/registrations", headers=auth_header(editor)
        )
        assert mine.status_code == 200
        assert mine.json()["pagination"]["total"] == 1

        theirs = client.get(
            f"/api/events/{event['id']}/registrations", headers=auth_header(member)
        )
        assert theirs.status_code == 403

    def test_bad_time_is_rejected(self, client, editor):
        resp = client.post(
            "/api/events", json=_event_body(time="25:00"), headers=auth_header(editor)
        )
        assert resp.status_code == 400

    def test_list_and_upcoming(self, client, editor):
        self._create(client, editor, title="Published", is_published=True)
        self._create(client, editor, title="Hidden")
        listed = client.get("/api/events").json()
        assert listed["pagination"]["total"] == 2
        upcoming = client.get("/api/events/upcoming").json()["data"]
        assert [e["title"] for e in upcoming] == ["Published"]


# ===========================================================================
# Media
# ===========================================================================
class TestMediaRoutes:
    def _upload(self, client, user, **form) -> dict:
        resp = client.post(
            "/api/media/upload",
            files={"file": ("photo.png", png_bytes(), "image/png")},
            data=form,
            headers=auth_header(user),
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["data"]

    def test_requires_authentication(self, client):
        resp = client.get("/api/media/statistics")
        assert resp.status_code == 401

    def test_visitor_cannot_upload(self, client, visitor):
        resp = client.post(
            "/api/media/upload",
            files={"file": ("photo.png", png_bytes(), "image/png")},
            headers=auth_header(visitor),
        )
        assert resp.status_code == 403

    def test_upload_with_form_metadata(self, client, s3_client, member):
        media = self._upload(client, member, tags="Beach, sunset", description="Low tide")
        assert media["type"] == "image"
        assert media["tags"] == ["beach", "sunset"]
        assert media["description"] == "Low tide"
        assert len(s3_client.objects) == 2

    def test_unsupported_type_is_415(self, client, s3_client, member):
        resp = client.post(
            "/api/media/upload",
            files={"file": ("page.html", b"<html></html>", "text/html")},
            headers=auth_header(member),
        )
        assert resp.status_code == 415
        assert resp.json()["error"]["code"] == "INVALID_FILE_TYPE"
        assert s3_client.objects == {}

    def test_multiple_upload_reports_each_file(self, client, member):
        resp = client.post(
            "/api/media/upload/multiple",
            files=[
                ("files", ("a.png", png_bytes(), "image/png")),
                ("files", ("b.txt", b"hello", "text/plain")),
            ],
            headers=auth_header(member),
        )
        assert resp.status_code == 201
        body = resp.json()
        assert len(body["data"]["uploaded"]) == 1
        assert body["data"]["failed"][0]["filename"] == "b.txt"
        assert body["message"] == "1 of 2 files uploaded"

    def test_get_with_size_and_missing(self, client, member):
        media = self._upload(client, member)
        headers = auth_header(member)
        resp = client.get(f"/api/media/{media['id']}", params={"size": "medium"}, headers=headers)
        assert "?tr=w-800,h-600" in resp.json()["data"]["url"]

        missing = client.get("/api/media/nope", headers=headers)
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "MEDIA_NOT_FOUND"

    def test_search_and_tags(self, client, member):
        self._upload(client, member, tags="choir")
        headers = auth_header(member)
        found = client.get("/api/media/search", params={"q": "choir"}, headers=headers)
        assert found.json()["data"]["total_count"] == 1
        tagged = client.get("/api/media/tags", params={"tags": "CHOIR,other"}, headers=headers)
        assert tagged.json()["data"]["total_count"] == 1

    def test_update_and_delete_ownership(self, client, db_engine, member):
        media = self._upload(client, member)
        other = make_user(db_engine, email="other@example.org", role=UserRole.MEMBER)

        denied = client.put(
            f"/api/media/{media['id']}", json={"alt_text": "x"}, headers=auth_header(other)
        )
        assert denied.status_code == 403

        updated = client.put(
            f"/api/media/{media['id']}", json={"alt_text": "A photo"}, headers=auth_header(member)
        )
        assert updated.json()["data"]["alt_text"] == "A photo"

        deleted = client.delete(f"/api/media/{media['id']}", headers=auth_header(member))
        assert deleted.status_code == 200

    def test_bulk_delete(self, client, s3_client, member):
        first = self._upload(client, member)
        second = self._upload(client, member)
        resp = client.request(
            "DELETE",
            "/api/media/bulk",
            json={"ids": [first["id"], second["id"], "ghost"]},
            headers=auth_header(member),
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert sorted(data["deleted"]) == sorted([first["id"], second["id"]])
        assert [f["id"] for f in data["failed"]] == ["ghost"]
        assert s3_client.objects == {}

    def test_download_link(self, client, member):
        media = self._upload(client, member)
        resp = client.get(f"/api/media/{media['id']}/download", headers=auth_header(member))
        data = resp.json()["data"]
        assert data["filename"] == "photo.png"
        assert data["expires_in"] == 3600

    def test_event_gallery(self, client, editor, member):
        event = client.post(
            "/api/events", json=_event_body(), headers=auth_header(editor)
        ).json()["data"]
        self._upload(client, member, event_id=event["id"])
        resp = client.get(f"/api/media/gallery/{event['id']}/photos", headers=auth_header(member))
        assert resp.json()["data"]["total_count"] == 1

    def test_upload_to_unknown_event(self, client, member):
        resp = client.post(
            "/api/media/upload",
            files={"file": ("photo.png", png_bytes(), "image/png")},
            data={"event_id": "nope"},
            headers=auth_header(member),
        )
        assert resp.status_code == 404

    @pytest.mark.parametrize("limit", [0, 101])
    def test_gallery_limit_bounds(self, client, member, limit):
        resp = client.get(
            "/api/media/gallery/any/photos", params={"limit": limit}, headers=auth_header(member)
        )
        assert resp.status_code == 400
