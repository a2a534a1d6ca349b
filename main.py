import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Body, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError

from auth import Authorizer, check_credentials, require_admin, shared_secret_authorizer
from config import Settings
from database import (
    InvalidObjectId,
    connect,
    create_document,
    delete_document,
    ensure_indexes,
    find_document,
    get_document,
    get_documents,
    parse_object_id,
    serialize,
    update_document,
)
from mailer import MailError, Mailer, SmtpMailer
from notifications import build_ticket_email
from schemas import (
    BOOKING_STATUSES,
    AdminLogin,
    Booking as BookingSchema,
    Event as EventSchema,
    EventUpdate,
    StatusUpdate,
    TicketEmailRequest,
)
from storage import (
    EVENTS_FOLDER,
    RECEIPTS_FOLDER,
    SPONSORS_FOLDER,
    CloudinaryStore,
    MediaStore,
    MediaStoreError,
    staged_uploads,
)
from tickets import TICKET_MAX, TICKET_MIN, TicketNumberExhausted, issue_ticket_number

logger = logging.getLogger(__name__)

MAX_SPONSOR_LOGOS = 10


# ---------- Utility ----------
def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _error_message(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def _validate(model: type, data: Dict[str, Any]) -> BaseModel:
    try:
        return model(**data)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_error_message(e.errors()))


def _object_id(value: str, message: str) -> ObjectId:
    try:
        return parse_object_id(value)
    except InvalidObjectId:
        raise HTTPException(status_code=400, detail=message)


def _read(upload: UploadFile) -> bytes:
    return upload.file.read()


def _populate_events(db, bookings: List[dict]) -> List[dict]:
    """Replace each booking's eventId with the referenced event (None when it is gone)."""
    ids = {b["eventId"] for b in bookings if isinstance(b.get("eventId"), ObjectId)}
    events = {}
    if ids:
        for event in get_documents(db, "event", {"_id": {"$in": list(ids)}}):
            events[event["_id"]] = serialize(event)
    items = []
    for booking in bookings:
        item = serialize(booking)
        item["eventId"] = events.get(booking.get("eventId"))
        items.append(item)
    return items


# ---------- Form parsing ----------
def event_form(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    standard_price: Optional[str] = Form(None, alias="standardPrice"),
    vip_price: Optional[str] = Form(None, alias="vipPrice"),
    event_time: Optional[str] = Form(None, alias="eventTime"),
    refreshments: Optional[str] = Form(None),
) -> Dict[str, Optional[str]]:
    return {
        "title": _clean(title),
        "description": _clean(description),
        "date": _clean(date),
        "location": _clean(location),
        "category": _clean(category),
        "address": _clean(address),
        "standardPrice": _clean(standard_price),
        "vipPrice": _clean(vip_price),
        "eventTime": _clean(event_time),
        "refreshments": _clean(refreshments),
    }


def booking_form(
    first_name: Optional[str] = Form(None, alias="firstName"),
    last_name: Optional[str] = Form(None, alias="lastName"),
    contact_number: Optional[str] = Form(None, alias="contactNumber"),
    email_address: Optional[str] = Form(None, alias="emailAddress"),
    city_name: Optional[str] = Form(None, alias="cityName"),
    ticket_type: Optional[str] = Form(None, alias="ticketType"),
    event_id: Optional[str] = Form(None, alias="eventId"),
) -> Dict[str, Optional[str]]:
    return {
        "firstName": _clean(first_name),
        "lastName": _clean(last_name),
        "contactNumber": _clean(contact_number),
        "emailAddress": _clean(email_address),
        "cityName": _clean(city_name),
        "ticketType": _clean(ticket_type),
        "eventId": _clean(event_id),
    }


# ---------- Events ----------
events_router = APIRouter(prefix="/api/events", tags=["events"])


@events_router.post("/add", status_code=201, dependencies=[Depends(require_admin)])
def create_event(
    request: Request,
    fields: Dict[str, Optional[str]] = Depends(event_form),
    imageUrl: Optional[UploadFile] = File(None),
    sponsorLogos: Optional[List[UploadFile]] = File(None),
):
    sponsorLogos = sponsorLogos or []
    if len(sponsorLogos) > MAX_SPONSOR_LOGOS:
        raise HTTPException(status_code=400, detail=f"At most {MAX_SPONSOR_LOGOS} sponsor logos are allowed")

    event = _validate(EventSchema, {k: v for k, v in fields.items() if v is not None})
    db = request.app.state.db
    try:
        with staged_uploads(request.app.state.media_store) as stage:
            if imageUrl is not None:
                event.imageUrl = stage.upload(_read(imageUrl), EVENTS_FOLDER)
            event.sponsorLogos = [stage.upload(_read(f), SPONSORS_FOLDER) for f in sponsorLogos]
            event_id = create_document(db, "event", event)
        saved = get_document(db, "event", ObjectId(event_id))
    except (MediaStoreError, PyMongoError):
        logger.exception("Failed to create event")
        raise HTTPException(status_code=500, detail="Failed to create event")

    logger.info("Created event %s (%s)", event_id, event.title)
    return serialize(saved)


@events_router.get("")
def list_events(request: Request):
    try:
        docs = get_documents(request.app.state.db, "event")
    except PyMongoError:
        logger.exception("Failed to fetch events")
        raise HTTPException(status_code=500, detail="Failed to fetch events")
    return [serialize(d) for d in docs]


@events_router.get("/{id}")
def get_event(id: str, request: Request):
    oid = _object_id(id, "Invalid event ID")
    try:
        event = get_document(request.app.state.db, "event", oid)
    except PyMongoError:
        logger.exception("Failed to fetch event %s", id)
        raise HTTPException(status_code=500, detail="Failed to fetch event")
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return serialize(event)


@events_router.put("/{id}", dependencies=[Depends(require_admin)])
def update_event(
    id: str,
    request: Request,
    fields: Dict[str, Optional[str]] = Depends(event_form),
    imageUrl: Optional[UploadFile] = File(None),
    sponsorLogos: Optional[List[UploadFile]] = File(None),
):
    oid = _object_id(id, "Invalid event ID")
    sponsorLogos = sponsorLogos or []
    if len(sponsorLogos) > MAX_SPONSOR_LOGOS:
        raise HTTPException(status_code=400, detail=f"At most {MAX_SPONSOR_LOGOS} sponsor logos are allowed")

    db = request.app.state.db
    try:
        existing = get_document(db, "event", oid)
        if existing is None:
            raise HTTPException(status_code=404, detail="Event not found")

        # Absent or blank fields keep their stored value.
        changes = {k: v for k, v in fields.items() if v is not None}
        updates = _validate(EventUpdate, changes).model_dump(exclude_unset=True)

        with staged_uploads(request.app.state.media_store) as stage:
            if imageUrl is not None:
                updates["imageUrl"] = stage.upload(_read(imageUrl), EVENTS_FOLDER)
            if sponsorLogos:
                updates["sponsorLogos"] = [stage.upload(_read(f), SPONSORS_FOLDER) for f in sponsorLogos]
            updated = update_document(db, "event", oid, updates)
    except (MediaStoreError, PyMongoError):
        logger.exception("Failed to update event %s", id)
        raise HTTPException(status_code=500, detail="Failed to update event")

    if updated is None:
        raise HTTPException(status_code=404, detail="Event not found")
    logger.info("Updated event %s (%s)", id, ", ".join(sorted(updates)) or "no changes")
    return serialize(updated)


@events_router.delete("/{id}", dependencies=[Depends(require_admin)])
def delete_event(id: str, request: Request):
    oid = _object_id(id, "Invalid event ID")
    try:
        deleted = delete_document(request.app.state.db, "event", oid)
    except PyMongoError:
        logger.exception("Failed to delete event %s", id)
        raise HTTPException(status_code=500, detail="Failed to delete event")
    if not deleted:
        raise HTTPException(status_code=404, detail="Event not found")
    logger.info("Deleted event %s", id)
    return {"message": "Event deleted successfully"}


# ---------- Admin ----------
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


@admin_router.post("/login")
def admin_login(payload: AdminLogin, request: Request):
    settings: Settings = request.app.state.settings
    if not check_credentials(payload.email, payload.password, settings.admin_email, settings.admin_password):
        logger.warning("Failed admin login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid admin credentials")
    if not settings.admin_token:
        logger.error("Admin login succeeded but ADMIN_TOKEN is not set")
        raise HTTPException(status_code=500, detail="Admin access is not configured")
    return {"message": "Login successful", "token": settings.admin_token}


@admin_router.get("/verify", dependencies=[Depends(require_admin)])
def admin_verify():
    return {"admin": True}


# ---------- Bookings ----------
booking_router = APIRouter(prefix="/api/booking", tags=["booking"])


@booking_router.post("/create", status_code=201)
def create_booking(
    request: Request,
    fields: Dict[str, Optional[str]] = Depends(booking_form),
    receiptImage: Optional[UploadFile] = File(None),
):
    if receiptImage is None:
        raise HTTPException(status_code=400, detail="Receipt image is required")
    if not fields["eventId"]:
        raise HTTPException(status_code=400, detail="eventId is required")
    event_oid = _object_id(fields["eventId"], "Invalid event ID")

    db = request.app.state.db
    try:
        ticket_number = issue_ticket_number(db)
        booking = _validate(
            BookingSchema,
            {**fields, "ticketNumber": ticket_number, "receiptImage": ""},
        )
        with staged_uploads(request.app.state.media_store) as stage:
            booking.receiptImage = stage.upload(_read(receiptImage), RECEIPTS_FOLDER)
            data = booking.model_dump()
            data["eventId"] = event_oid
            booking_id = create_document(db, "booking", data)
        saved = get_document(db, "booking", ObjectId(booking_id))
    except (MediaStoreError, PyMongoError, TicketNumberExhausted):
        logger.exception("Booking create failed")
        raise HTTPException(status_code=500, detail="Booking failed")

    logger.info("Created booking %s with ticket %s", booking_id, ticket_number)
    return {"message": "Booking created successfully", "booking": serialize(saved)}


@booking_router.get("")
def list_bookings(request: Request):
    db = request.app.state.db
    try:
        return _populate_events(db, get_documents(db, "booking"))
    except PyMongoError:
        logger.exception("Failed to fetch bookings")
        raise HTTPException(status_code=500, detail="Failed to fetch bookings")


@booking_router.put("/update-status/{id}")
def update_booking_status(id: str, payload: StatusUpdate, request: Request):
    if payload.status not in BOOKING_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status value")
    oid = _object_id(id, "Invalid booking ID")
    try:
        updated = update_document(request.app.state.db, "booking", oid, {"status": payload.status})
    except PyMongoError:
        logger.exception("Status update failed for booking %s", id)
        raise HTTPException(status_code=500, detail="Failed to update status")
    if updated is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    logger.info("Booking %s status set to %s", id, payload.status)
    return {"message": "Status updated successfully", "booking": serialize(updated)}


@booking_router.get("/verify/{ticketNumber}")
def verify_ticket(ticketNumber: str, request: Request):
    if not (ticketNumber.isascii() and ticketNumber.isdigit()):
        raise HTTPException(status_code=400, detail="Invalid ticket number")
    number = int(ticketNumber)
    db = request.app.state.db
    try:
        booking = None
        if TICKET_MIN <= number <= TICKET_MAX:
            booking = find_document(db, "booking", {"ticketNumber": number})
        if booking is None:
            return JSONResponse(
                status_code=404,
                content={"valid": False, "message": "Invalid ticket. No matching record found."},
            )
        populated = _populate_events(db, [booking])[0]
    except PyMongoError:
        logger.exception("Ticket verification failed for %s", ticketNumber)
        raise HTTPException(status_code=500, detail="Verification failed")
    return {"valid": True, "message": "Ticket is valid", "booking": populated}


@booking_router.post("/send-email/{id}")
def send_ticket_email(id: str, request: Request, payload: Optional[TicketEmailRequest] = Body(None)):
    payload = payload or TicketEmailRequest()
    oid = _object_id(id, "Invalid booking ID")
    db = request.app.state.db
    settings: Settings = request.app.state.settings
    mailer: Mailer = request.app.state.mailer

    try:
        booking = get_document(db, "booking", oid)
        if booking is None:
            raise HTTPException(status_code=404, detail="Booking not found")
        if not booking.get("emailAddress"):
            raise HTTPException(status_code=400, detail="Booking has no email address")
        event = None
        if isinstance(booking.get("eventId"), ObjectId):
            event = get_document(db, "event", booking["eventId"])
    except PyMongoError:
        logger.exception("Failed to load booking %s for email", id)
        raise HTTPException(status_code=500, detail="Email sending failed")

    ticket = build_ticket_email(
        booking,
        event,
        settings.ticket_verify_url,
        subject=payload.subject,
        message=payload.message,
        html_content=payload.htmlContent,
    )
    try:
        mailer.send(
            booking["emailAddress"],
            ticket.subject,
            ticket.text,
            ticket.html,
            inline_images=ticket.inline_images,
        )
    except MailError:
        logger.exception("Email for booking %s failed", id)
        raise HTTPException(status_code=500, detail="Email sending failed")

    return {"message": "Email sent successfully", "qrCode": ticket.qr_data_url}


@booking_router.get("/{id}")
def get_booking(id: str, request: Request):
    oid = _object_id(id, "Invalid booking ID")
    db = request.app.state.db
    try:
        booking = get_document(db, "booking", oid)
        if booking is None:
            raise HTTPException(status_code=404, detail="Booking not found")
        return _populate_events(db, [booking])[0]
    except PyMongoError:
        logger.exception("Failed to fetch booking %s", id)
        raise HTTPException(status_code=500, detail="Failed to fetch booking")


@booking_router.delete("/{id}", dependencies=[Depends(require_admin)])
def delete_booking(id: str, request: Request):
    oid = _object_id(id, "Invalid booking ID")
    try:
        deleted = delete_document(request.app.state.db, "booking", oid)
    except PyMongoError:
        logger.exception("Failed to delete booking %s", id)
        raise HTTPException(status_code=500, detail="Failed to delete booking")
    if not deleted:
        raise HTTPException(status_code=404, detail="Booking not found")
    logger.info("Deleted booking %s", id)
    return {"message": "Booking deleted successfully"}


# ---------- Service routes ----------
service_router = APIRouter()


@service_router.get("/")
def read_root():
    return {"message": "Backend is running..."}


@service_router.get("/test")
def test_database(request: Request):
    """Test endpoint to check if database is available and accessible"""
    db = request.app.state.db
    settings: Settings = request.app.state.settings
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }

    if db is not None:
        response["database_name"] = db.name
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "Connected & Working"
            response["connection_status"] = "Connected"
        except PyMongoError as e:
            logger.warning("Database check failed: %s", e)
            response["database"] = f"Connected but Error: {str(e)[:50]}"

    response["database_url"] = "Set" if settings.database_url else "Not Set"
    response["media_store"] = "Set" if settings.cloudinary_cloud_name else "Not Set"
    response["mail"] = "Set" if settings.email_user else "Not Set"
    return response


# ---------- Application ----------
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": _error_message(exc.errors())})


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes(app.state.db)
    yield


def create_app(
    settings: Optional[Settings] = None,
    db=None,
    media_store: Optional[MediaStore] = None,
    mailer: Optional[Mailer] = None,
    authorize: Optional[Authorizer] = None,
) -> FastAPI:
    """Build the API from explicit collaborators; anything not given comes from settings."""
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if db is None:
        db = connect(settings.database_url, settings.database_name)
    if media_store is None:
        media_store = CloudinaryStore(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
        )
    if mailer is None:
        mailer = SmtpMailer(
            settings.email_host,
            settings.email_port,
            settings.email_user,
            settings.email_password,
            sender=settings.email_from,
        )
    if authorize is None:
        authorize = shared_secret_authorizer(settings.admin_token)

    app = FastAPI(title="Event Ticketing API", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    app.state.media_store = media_store
    app.state.mailer = mailer
    app.state.authorize = authorize

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.client_urls,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(service_router)
    app.include_router(events_router)
    app.include_router(admin_router)
    app.include_router(booking_router)
    app.mount("/uploads", StaticFiles(directory=settings.static_dir, check_dir=False), name="uploads")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
