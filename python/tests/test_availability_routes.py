"""Route tests for availability and overlap endpoints."""

from uuid import uuid4

from tests.factories import create_entry, create_user
from tests.helpers import auth_headers, utc

MONDAY = "2026-01-05T00:00:00Z"
TUESDAY = "2026-01-06T00:00:00Z"


def create_body(**overrides) -> dict:
    body = {"start": "2026-01-05T18:00:00Z", "end": "2026-01-05T20:00:00Z"}
    body.update(overrides)
    return body


class TestCreate:
    def test_create_returns_201(self, client, test_user_id):
        response = client.post(
            "/availability", json=create_body(label="Ranked"), headers=auth_headers(test_user_id)
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["owner_user_id"] == str(test_user_id)
        assert data["label"] == "Ranked"
        assert data["origin"] == "manual"

    def test_naive_instant_rejected(self, client, test_user_id):
        response = client.post(
            "/availability",
            json=create_body(start="2026-01-05T18:00:00"),
            headers=auth_headers(test_user_id),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_inverted_range(self, client, test_user_id):
        response = client.post(
            "/availability",
            json=create_body(start="2026-01-05T21:00:00Z"),
            headers=auth_headers(test_user_id),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_RANGE"

    def test_requires_auth(self, client):
        response = client.post("/availability", json=create_body())

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "E_UNAUTHENTICATED"


class TestReadWindow:
    def test_my_window_includes_hidden_entries(self, client, test_user_id):
        headers = auth_headers(test_user_id)
        client.post("/availability", json=create_body(visible=False), headers=headers)

        response = client.get(
            "/availability/me", params={"start": MONDAY, "end": TUESDAY}, headers=headers
        )

        assert response.status_code == 200
        assert len(response.json()["data"]) == 1

    def test_naive_query_instant_rejected(self, client, test_user_id):
        response = client.get(
            "/availability/me",
            params={"start": "2026-01-05T00:00:00"},
            headers=auth_headers(test_user_id),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_INSTANT"

    def test_public_window_is_anonymous_and_hides_invisible(self, client, db_session):
        owner = create_user(db_session, username="alpha")
        shown = create_entry(db_session, owner, utc(2026, 1, 5, 18), utc(2026, 1, 5, 20))
        create_entry(db_session, owner, utc(2026, 1, 5, 21), utc(2026, 1, 5, 22), visible=False)

        response = client.get(
            f"/users/{owner.id}/availability", params={"start": MONDAY, "end": TUESDAY}
        )

        assert response.status_code == 200
        assert [e["id"] for e in response.json()["data"]] == [str(shown.id)]

    def test_private_user_window_is_not_found(self, client, db_session):
        owner = create_user(db_session, username="alpha", is_public=False)

        response = client.get(f"/users/{owner.id}/availability")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_USER_NOT_FOUND"


class TestMutate:
    def test_patch_and_delete(self, client, test_user_id):
        headers = auth_headers(test_user_id)
        entry_id = client.post("/availability", json=create_body(), headers=headers).json()[
            "data"
        ]["id"]

        patched = client.patch(
            f"/availability/{entry_id}", json={"kind": "busy"}, headers=headers
        )
        assert patched.status_code == 200
        assert patched.json()["data"]["kind"] == "busy"
        assert patched.json()["data"]["label"] == "Busy"

        deleted = client.delete(f"/availability/{entry_id}", headers=headers)
        assert deleted.status_code == 204

        again = client.delete(f"/availability/{entry_id}", headers=headers)
        assert again.status_code == 404
        assert again.json()["error"]["code"] == "E_ENTRY_NOT_FOUND"

    def test_other_users_entry_is_not_found(self, client):
        owner_headers = auth_headers(uuid4())
        entry_id = client.post("/availability", json=create_body(), headers=owner_headers).json()[
            "data"
        ]["id"]

        response = client.patch(
            f"/availability/{entry_id}", json={"label": "mine"}, headers=auth_headers(uuid4())
        )

        assert response.status_code == 404

    def test_synced_entry_is_immutable(self, client, db_session, test_user_id):
        owner = create_user(db_session, username="alpha", user_id=test_user_id)
        entry = create_entry(
            db_session,
            owner,
            utc(2026, 1, 5, 9),
            utc(2026, 1, 5, 10),
            kind="busy",
            origin="externally_synced",
            provider_name="google",
            external_event_id="evt-1",
        )

        response = client.delete(f"/availability/{entry.id}", headers=auth_headers(test_user_id))

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "E_IMMUTABLE_SOURCE"


class TestOverlapRoute:
    def test_anonymous_overlap(self, client, db_session):
        a = create_user(db_session, username="alpha")
        b = create_user(db_session, username="bravo")
        create_entry(db_session, a, utc(2026, 1, 5, 18), utc(2026, 1, 5, 22))
        create_entry(db_session, b, utc(2026, 1, 5, 20), utc(2026, 1, 5, 23))

        response = client.post(
            "/availability/overlap",
            json={"user_ids": [str(a.id), str(b.id)], "start": MONDAY, "end": TUESDAY},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["entries_by_user"][str(a.id)]) == 1
        assert len(data["common_windows"]) == 1

    def test_empty_user_list_rejected(self, client):
        response = client.post(
            "/availability/overlap", json={"user_ids": [], "start": MONDAY, "end": TUESDAY}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"
