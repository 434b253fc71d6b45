"""
Database Schemas for Mountain Cottage

Each Pydantic model represents a MongoDB collection.
Collection name is the lowercase of the class name.
"""
from typing import Optional, List, Literal
from pydantic import BaseModel, Field
from datetime import datetime

class User(BaseModel):
    username: str = Field(..., description="Unique login name")
    password_hash: str = Field(..., description="Salted SHA-256 password hash")
    salt: str
    first_name: str
    last_name: str
    gender: Literal["M", "F"]
    address: str
    phone: str
    email: str = Field(..., description="Unique, lower-cased email address")
    profile_picture: Optional[str] = Field(None, description="Profile image path")
    credit_card: str = Field(..., description="Digits only")
    user_type: Literal["tourist", "owner", "admin"]
    is_active: bool = False

class Registrationrequest(BaseModel):
    """
    A registration waiting for administrator review.
    Rejected usernames/emails stay blocked for new requests.
    """
    username: str
    password_hash: str
    salt: str
    first_name: str
    last_name: str
    gender: Literal["M", "F"]
    address: str
    phone: str
    email: str
    profile_picture: Optional[str] = None
    credit_card: str
    user_type: Literal["tourist", "owner"]
    status: Literal["pending", "approved", "rejected"] = "pending"
    reviewed_at: Optional[datetime] = None

class Cottage(BaseModel):
    name: str
    location: str
    owner_id: str = Field(..., description="Owner user id")
    description: str = ""
    summer_price: float = Field(..., ge=0, description="Nightly rate May-August")
    winter_price: float = Field(..., ge=0, description="Nightly rate other months")
    capacity: int = Field(..., ge=1)
    amenities: List[str] = []
    images: List[str] = []
    phone: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    blocked_until: Optional[datetime] = Field(None, description="No new reservations before this moment")

class Reservation(BaseModel):
    cottage_id: str
    tourist_id: str
    check_in: datetime
    check_out: datetime
    adults: int = Field(0, ge=0)
    children: int = Field(0, ge=0)
    total_price: float = Field(..., ge=0)
    status: Literal["pending", "confirmed", "cancelled"] = "pending"
    credit_card: str = ""
    note: str = Field("", max_length=500)

class Rating(BaseModel):
    """
    One rating per (cottage_id, tourist_id); a second submission updates it.
    """
    cottage_id: str
    tourist_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str

class Session(BaseModel):
    user_id: str
    token: str
    expires_at: float = Field(..., description="Unix timestamp")
