import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

import main
import storage
from conftest import CONCERT


def logo_files(count):
    return [("sponsorLogos", (f"logo{i}.png", f"logo-{i}".encode(), "image/png")) for i in range(count)]


def test_create_then_get_returns_submitted_fields(client, event):
    resp = client.get(f"/api/events/{event['_id']}")
    assert resp.status_code == 200
    body = resp.json()
    for field in ("title", "description", "date", "location", "category", "address", "eventTime", "refreshments"):
        assert body[field] == CONCERT[field]
    assert body["standardPrice"] == 1500
    assert body["vipPrice"] == 5000
    assert body["imageUrl"].startswith("https://media.test/events/")
    assert body["sponsorLogos"] == []
    assert "createdAt" in body


def test_create_uploads_image_and_logos_in_order(client, admin_headers, media_store):
    files = [("imageUrl", ("poster.png", b"poster", "image/png"))] + logo_files(3)
    resp = client.post("/api/events/add", data=CONCERT, files=files, headers=admin_headers)
    assert resp.status_code == 201
    body = resp.json()
    assert len(body["sponsorLogos"]) == 3
    ids = [url[len("https://media.test/"):-len(".png")] for url in body["sponsorLogos"]]
    assert [media_store.uploads[i] for i in ids] == [b"logo-0", b"logo-1", b"logo-2"]
    assert media_store.folders() == ["events", "events/sponsors", "events/sponsors", "events/sponsors"]


def test_create_without_image_keeps_empty_url(client, admin_headers):
    resp = client.post("/api/events/add", data=CONCERT, headers=admin_headers)
    assert resp.status_code == 201
    assert resp.json()["imageUrl"] == ""


def test_create_requires_admin(client, db):
    assert client.post("/api/events/add", data=CONCERT).status_code == 401
    wrong = {"Authorization": "Bearer nope"}
    assert client.post("/api/events/add", data=CONCERT, headers=wrong).status_code == 401
    assert db["event"].count_documents({}) == 0


@pytest.mark.parametrize("missing", ["title", "date"])
def test_create_requires_title_and_date(client, admin_headers, db, media_store, missing):
    data = {k: v for k, v in CONCERT.items() if k != missing}
    resp = client.post(
        "/api/events/add",
        data=data,
        files=[("imageUrl", ("poster.png", b"poster", "image/png"))],
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert missing in resp.json()["detail"]
    assert db["event"].count_documents({}) == 0
    assert media_store.uploads == {}


def test_create_rejects_more_than_ten_logos(client, admin_headers, media_store):
    resp = client.post("/api/events/add", data=CONCERT, files=logo_files(11), headers=admin_headers)
    assert resp.status_code == 400
    assert media_store.uploads == {}


def test_create_rejects_negative_price(client, admin_headers):
    data = dict(CONCERT, vipPrice="-1")
    assert client.post("/api/events/add", data=data, headers=admin_headers).status_code == 400


def test_failed_save_removes_uploaded_files(client, admin_headers, media_store, monkeypatch):
    def broken_insert(*args, **kwargs):
        raise PyMongoError("write failed")

    monkeypatch.setattr(main, "create_document", broken_insert)
    files = [("imageUrl", ("poster.png", b"poster", "image/png"))] + logo_files(2)
    resp = client.post("/api/events/add", data=CONCERT, files=files, headers=admin_headers)
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Failed to create event"}
    assert sorted(media_store.deleted) == sorted(media_store.uploads)
    assert len(media_store.deleted) == 3


def test_failed_upload_returns_500(client, admin_headers, media_store, db):
    media_store.fail_folder = "events/sponsors"
    files = [("imageUrl", ("poster.png", b"poster", "image/png"))] + logo_files(1)
    resp = client.post("/api/events/add", data=CONCERT, files=files, headers=admin_headers)
    assert resp.status_code == 500
    assert db["event"].count_documents({}) == 0
    assert media_store.deleted == ["events/1"]


def test_list_events_newest_first(client, admin_headers):
    for title in ("First", "Second", "Third"):
        client.post("/api/events/add", data=dict(CONCERT, title=title), headers=admin_headers)
    resp = client.get("/api/events")
    assert resp.status_code == 200
    assert [e["title"] for e in resp.json()] == ["Third", "Second", "First"]


class UnreachableDatabase:
    name = "unreachable"

    def __getitem__(self, item):
        raise AssertionError("database must not be queried")


@pytest.mark.parametrize("bad_id", ["123", "not-an-id", "g" * 24, "a" * 25])
def test_get_event_with_malformed_id_is_400_without_database(client, app, bad_id):
    app.state.db = UnreachableDatabase()
    resp = client.get(f"/api/events/{bad_id}")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid event ID"


def test_get_unknown_event_is_404(client):
    assert client.get(f"/api/events/{ObjectId()}").status_code == 404


def test_partial_update_keeps_unspecified_fields(client, event, admin_headers):
    resp = client.put(
        f"/api/events/{event['_id']}",
        data={"title": "Concert (moved)", "location": "Karachi", "description": "  "},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    body = client.get(f"/api/events/{event['_id']}").json()
    assert body["title"] == "Concert (moved)"
    assert body["location"] == "Karachi"
    assert body["description"] == CONCERT["description"]
    assert body["date"] == CONCERT["date"]
    assert body["vipPrice"] == 5000
    assert body["imageUrl"] == event["imageUrl"]
    assert body["sponsorLogos"] == event["sponsorLogos"]


def test_update_replaces_images_only_when_attached(client, event, admin_headers):
    files = [("imageUrl", ("new.png", b"new", "image/png"))] + logo_files(2)
    body = client.put(f"/api/events/{event['_id']}", files=files, headers=admin_headers).json()
    assert body["imageUrl"] != event["imageUrl"]
    assert len(body["sponsorLogos"]) == 2

    again = client.put(f"/api/events/{event['_id']}", data={"category": "Live"}, headers=admin_headers).json()
    assert again["imageUrl"] == body["imageUrl"]
    assert again["sponsorLogos"] == body["sponsorLogos"]
    assert again["category"] == "Live"


def test_update_converts_prices(client, event, admin_headers):
    body = client.put(f"/api/events/{event['_id']}", data={"standardPrice": "2000.5"}, headers=admin_headers).json()
    assert body["standardPrice"] == 2000.5


def test_update_errors(client, event, admin_headers):
    assert client.put("/api/events/bad-id", data={"title": "x"}, headers=admin_headers).status_code == 400
    assert client.put(f"/api/events/{ObjectId()}", data={"title": "x"}, headers=admin_headers).status_code == 404
    assert client.put(f"/api/events/{event['_id']}", data={"title": "x"}).status_code == 401


def test_delete_event(client, event, admin_headers):
    assert client.delete(f"/api/events/{event['_id']}").status_code == 401
    resp = client.delete(f"/api/events/{event['_id']}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"message": "Event deleted successfully"}
    assert client.get(f"/api/events/{event['_id']}").status_code == 404
    assert client.delete(f"/api/events/{event['_id']}", headers=admin_headers).status_code == 404
    assert client.delete("/api/events/xyz", headers=admin_headers).status_code == 400


def test_database_outage_is_500(client, app):
    app.state.db = None
    resp = client.get("/api/events")
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Failed to fetch events"}


def test_unconfigured_media_store_gives_json_500(settings, db, mailer, admin_headers, monkeypatch):
    def sdk_without_key(*args, **kwargs):
        raise ValueError("Must supply api_key")

    monkeypatch.setattr(storage.cloudinary.uploader, "upload", sdk_without_key)
    app = main.create_app(
        settings=settings, db=db, media_store=storage.CloudinaryStore(None, None, None), mailer=mailer
    )
    with TestClient(app) as client:
        resp = client.post(
            "/api/events/add",
            data=CONCERT,
            files=[("imageUrl", ("poster.png", b"poster", "image/png"))],
            headers=admin_headers,
        )
    assert resp.status_code == 500
    assert resp.json() == {"detail": "Failed to create event"}
    assert db["event"].count_documents({}) == 0


def test_update_does_not_recheck_untouched_stored_fields(client, db, admin_headers):
    legacy_id = db["event"].insert_one({"title": "Old show", "date": "2020-05-05", "vipPrice": -5}).inserted_id
    resp = client.put(f"/api/events/{legacy_id}", data={"title": "Old show (remastered)"}, headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["title"] == "Old show (remastered)"
    assert body["vipPrice"] == -5
    assert client.put(f"/api/events/{legacy_id}", data={"vipPrice": "-1"}, headers=admin_headers).status_code == 400
