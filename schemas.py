"""
Database Schemas for the Event Ticketing backend

Each Pydantic model represents a MongoDB collection.
Collection name is the lowercase of the class name (e.g., Booking -> "booking").
Field names follow the camelCase used by the front end.
"""

from typing import List, Literal, Optional, get_args

from pydantic import BaseModel, EmailStr, Field

BookingStatus = Literal["Pending", "Paid", "Unpaid", "Cancelled"]
BOOKING_STATUSES = get_args(BookingStatus)


class Event(BaseModel):
    """
    Events collection schema
    Collection name: "event"
    """
    title: str = Field(..., description="Event title", min_length=1)
    description: Optional[str] = Field(None, description="Event description")
    date: str = Field(..., description="Event date, e.g. 2025-01-01", min_length=1)
    location: Optional[str] = Field(None, description="Venue or city")
    category: Optional[str] = None
    address: Optional[str] = None
    standardPrice: Optional[float] = Field(None, ge=0, description="Standard ticket price")
    vipPrice: Optional[float] = Field(None, ge=0, description="VIP ticket price")
    eventTime: Optional[str] = Field(None, description="Start time, e.g. 19:00")
    refreshments: Optional[str] = None
    imageUrl: str = Field("", description="Primary event image URL")
    sponsorLogos: List[str] = Field(default_factory=list, description="Sponsor logo URLs in upload order")


class Booking(BaseModel):
    """
    Bookings collection schema
    Collection name: "booking"
    """
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    contactNumber: Optional[str] = None
    emailAddress: Optional[EmailStr] = Field(None, description="Ticket is emailed here")
    cityName: Optional[str] = None
    ticketType: Optional[str] = Field(None, description="e.g. Standard or VIP")
    eventId: str = Field(..., description="Id of the booked event")
    ticketNumber: int = Field(..., ge=100000, le=999999)
    receiptImage: str = Field(..., description="Payment receipt image URL")
    status: BookingStatus = "Pending"


# ---------- Request bodies ----------
class EventUpdate(BaseModel):
    """Fields supplied on a partial event update; stored values are not re-checked."""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    date: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = None
    category: Optional[str] = None
    address: Optional[str] = None
    standardPrice: Optional[float] = Field(None, ge=0)
    vipPrice: Optional[float] = Field(None, ge=0)
    eventTime: Optional[str] = None
    refreshments: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str


class TicketEmailRequest(BaseModel):
    subject: Optional[str] = None
    message: Optional[str] = None
    htmlContent: Optional[str] = None


class AdminLogin(BaseModel):
    email: str
    password: str
