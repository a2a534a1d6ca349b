import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from mailer import MailError
from storage import MediaStoreError, StoredMedia

ADMIN_TOKEN = "test-admin-token"


class FakeMediaStore:
    def __init__(self):
        self.uploads = {}
        self.deleted = []
        self.fail_folder = None

    def upload(self, data, folder):
        if folder == self.fail_folder:
            raise MediaStoreError(f"upload to {folder} refused")
        public_id = f"{folder}/{len(self.uploads) + 1}"
        self.uploads[public_id] = data
        return StoredMedia(url=f"https://media.test/{public_id}.png", public_id=public_id)

    def delete(self, public_id):
        self.deleted.append(public_id)

    def folders(self):
        return [public_id.rsplit("/", 1)[0] for public_id in self.uploads]


class RecordingMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, text, html, inline_images=None):
        if self.fail:
            raise MailError("smtp down")
        self.sent.append(
            {"to": to, "subject": subject, "text": text, "html": html, "inline_images": inline_images or []}
        )


@pytest.fixture
def settings():
    return Settings(
        admin_token=ADMIN_TOKEN,
        admin_email="admin@example.com",
        admin_password="s3cret",
        ticket_verify_url="https://tickets.example.com/verify-ticket",
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["tickets_test"]


@pytest.fixture
def media_store():
    return FakeMediaStore()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def app(settings, db, media_store, mailer):
    return create_app(settings=settings, db=db, media_store=media_store, mailer=mailer)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


CONCERT = {
    "title": "Concert",
    "description": "Open air concert",
    "date": "2025-01-01",
    "location": "Lahore",
    "category": "Music",
    "address": "Liberty Market",
    "standardPrice": "1500",
    "vipPrice": "5000",
    "eventTime": "19:00",
    "refreshments": "Tea and snacks",
}


@pytest.fixture
def event(client, admin_headers):
    resp = client.post(
        "/api/events/add",
        data=CONCERT,
        files=[("imageUrl", ("poster.png", b"poster-bytes", "image/png"))],
        headers=admin_headers,
    )
    assert resp.status_code == 201
    return resp.json()


def booking_form(event_id, **overrides):
    data = {
        "firstName": "Ayesha",
        "lastName": "Khan",
        "contactNumber": "03001234567",
        "emailAddress": "ayesha@example.com",
        "cityName": "Lahore",
        "ticketType": "VIP",
        "eventId": event_id,
    }
    data.update(overrides)
    return data


RECEIPT = [("receiptImage", ("receipt.jpg", b"receipt-bytes", "image/jpeg"))]


@pytest.fixture
def booking(client, event):
    resp = client.post("/api/booking/create", data=booking_form(event["_id"]), files=RECEIPT)
    assert resp.status_code == 201
    return resp.json()["booking"]
