import os
import re
import math
import time
import secrets
import hashlib
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any

from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from bson import ObjectId
from bson.errors import InvalidId

from database import db, create_document, get_documents
from schemas import (
    User as UserSchema,
    Registrationrequest as RegistrationRequestSchema,
    Cottage as CottageSchema,
    Reservation as ReservationSchema,
    Session as SessionSchema,
)
import booking
from booking import ReservationError, utcnow, as_naive_utc, daterange
from validation import (
    combine,
    validate_username,
    validate_password,
    validate_email,
    validate_phone,
    validate_required_string,
    validate_credit_card,
    validate_gender,
    validate_user_type,
    clean_card_number,
    normalize_gender,
    sanitize_string,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", str(60 * 60 * 24 * 7)))
DEFAULT_PROFILE_PICTURE = "/uploads/default-profile.png"
COTTAGE_SORT_FIELDS = {"name", "location", "summer_price", "winter_price", "capacity", "created_at"}

app = FastAPI(title="Mountain Cottage API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ------- Helpers -------

def hash_password(password: str, salt: str) -> str:
    return hashlib.sha256((salt + password).encode("utf-8")).hexdigest()


def verify_password(password: str, doc: dict) -> bool:
    expected = doc.get("password_hash", "")
    return secrets.compare_digest(hash_password(password, doc.get("salt", "")), expected)


def require_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def parse_object_id(value: str, label: str) -> ObjectId:
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label.lower()} id")


def get_or_404(collection: str, doc_id: str, label: str) -> dict:
    doc = require_db()[collection].find_one({"_id": parse_object_id(doc_id, label)})
    if not doc:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return doc


def to_str_id(doc):
    if doc is None:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def public_user(doc):
    d = to_str_id(doc)
    if d is not None:
        d.pop("password_hash", None)
        d.pop("salt", None)
    return d


def validation_failed(errors: List[str]):
    raise HTTPException(status_code=400, detail={"message": "Validation failed", "errors": errors})


def round_rating(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def rating_summary(cottage_id: str) -> Dict[str, Any]:
    ratings = list(require_db()["rating"].find({"cottage_id": cottage_id}))
    avg = sum(r["rating"] for r in ratings) / len(ratings) if ratings else 0
    return {"average_rating": round_rating(avg), "rating_count": len(ratings)}


def cottage_query(name: Optional[str], location: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if name:
        query["name"] = {"$regex": re.escape(name), "$options": "i"}
    if location:
        query["location"] = {"$regex": re.escape(location), "$options": "i"}
    return query


def find_cottages(name: Optional[str], location: Optional[str], sort_by: str, sort_order: str) -> List[dict]:
    field = sort_by if sort_by in COTTAGE_SORT_FIELDS else "name"
    direction = -1 if sort_order == "desc" else 1
    return list(require_db()["cottage"].find(cottage_query(name, location)).sort(field, direction))


def user_summary(user_id: str, fields=("first_name", "last_name", "email", "phone")) -> Optional[dict]:
    try:
        user = require_db()["user"].find_one({"_id": ObjectId(user_id)})
    except (InvalidId, TypeError):
        return None
    if not user:
        return None
    return {"id": str(user["_id"]), **{f: user.get(f) for f in fields}}


def confirmed_overlapping(cottage_id: str, check_in: datetime, check_out: datetime) -> List[dict]:
    return list(require_db()["reservation"].find({
        "cottage_id": cottage_id,
        "status": "confirmed",
        "check_in": {"$lte": check_out},
        "check_out": {"$gte": check_in},
    }))


# ------- Error handlers -------

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        errors.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return JSONResponse(status_code=400, content={"detail": {"message": "Validation failed", "errors": errors}})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


# ------- Seed admin in DB if missing -------

def ensure_admin():
    if db is None:
        return
    username = os.getenv("ADMIN_USERNAME", "admin")
    if db["user"].find_one({"username": username}):
        return
    salt = secrets.token_hex(8)
    admin = UserSchema(
        username=username,
        password_hash=hash_password(os.getenv("ADMIN_PASSWORD", "Pass123!@"), salt),
        salt=salt,
        first_name="Admin",
        last_name="User",
        gender="M",
        address="System Address",
        phone="0000000000",
        email=os.getenv("ADMIN_EMAIL", "admin@mountaincottage.com"),
        credit_card="0000000000000000",
        user_type="admin",
        is_active=True,
    )
    create_document("user", admin)
    logger.info("Seeded admin user %s", username)


ensure_admin()

# ------- Sessions -------

def create_session(user_id: str) -> str:
    token = secrets.token_urlsafe(32)
    create_document("session", SessionSchema(user_id=user_id, token=token, expires_at=time.time() + SESSION_TTL_SECONDS))
    return token


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip()


def get_user_by_token(authorization: Optional[str] = Header(None)) -> Optional[Dict[str, Any]]:
    token = bearer_token(authorization)
    if not token:
        return None
    database = require_db()
    session = database["session"].find_one({"token": token})
    if not session:
        return None
    if session.get("expires_at", 0) < time.time():
        database["session"].delete_one({"_id": session["_id"]})
        return None
    return database["user"].find_one({"_id": ObjectId(session["user_id"])})


def require_auth(user=Depends(get_user_by_token)):
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_admin(user=Depends(require_auth)):
    if user.get("user_type") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


# ------- Request models -------

class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str
    password: str
    first_name: str
    last_name: str
    gender: str
    address: str
    phone: str
    email: str
    credit_card: str
    user_type: str


class ChangePasswordRequest(BaseModel):
    username: str
    old_password: str
    new_password: str


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    credit_card: Optional[str] = None
    profile_picture: Optional[str] = None


class AdminUserUpdate(ProfileUpdate):
    gender: Optional[str] = None
    is_active: Optional[bool] = None


class AvailabilityRequest(BaseModel):
    check_in: datetime
    check_out: datetime
    adults: int = Field(0, ge=0)
    children: int = Field(0, ge=0)


class ReserveRequest(AvailabilityRequest):
    tourist_id: str
    total_price: Optional[float] = None
    credit_card: Optional[str] = None
    note: Optional[str] = Field(None, max_length=500)


class RateRequest(BaseModel):
    tourist_id: str
    rating: int
    comment: str


class RejectRequest(BaseModel):
    rejection_reason: Optional[str] = None


class CottageImport(BaseModel):
    """Cottage fields accepted from an uploaded JSON document; unknown keys are ignored."""
    name: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    description: str = ""
    summer_price: float = Field(..., gt=0, allow_inf_nan=False)
    winter_price: float = Field(..., gt=0, allow_inf_nan=False)
    capacity: int = Field(..., ge=1)
    amenities: List[str] = []
    phone: str = ""
    latitude: Optional[float] = Field(None, allow_inf_nan=False)
    longitude: Optional[float] = Field(None, allow_inf_nan=False)


class CottageCreate(CottageImport):
    owner_id: str
    images: List[str] = []


class CottageUpdate(BaseModel):
    name: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    summer_price: Optional[float] = Field(None, gt=0)
    winter_price: Optional[float] = Field(None, gt=0)
    capacity: Optional[int] = Field(None, ge=1)
    amenities: Optional[List[str]] = None
    images: Optional[List[str]] = None
    phone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


# ------- Routes -------
@app.get("/")
def root():
    return {"message": "Mountain Cottage API running"}


# ------- Public -------
@app.get("/api/public/statistics")
def public_statistics():
    database = require_db()
    now = utcnow()

    def reserved_since(delta: timedelta) -> int:
        return database["reservation"].count_documents({
            "created_at": {"$gte": now - delta},
            "status": {"$ne": "cancelled"},
        })

    return {
        "total_cottages": database["cottage"].count_documents({}),
        "total_owners": database["user"].count_documents({"user_type": "owner", "is_active": True}),
        "total_tourists": database["user"].count_documents({"user_type": "tourist", "is_active": True}),
        "reservations": {
            "last_24_hours": reserved_since(timedelta(hours=24)),
            "last_7_days": reserved_since(timedelta(days=7)),
            "last_30_days": reserved_since(timedelta(days=30)),
        },
    }


@app.get("/api/public/cottages")
def public_cottages(sort_by: str = "name", sort_order: str = "asc", name: Optional[str] = None, location: Optional[str] = None):
    items = []
    for c in find_cottages(name, location, sort_by, sort_order):
        d = to_str_id(c)
        d["owner"] = user_summary(c.get("owner_id"), ("first_name", "last_name", "email"))
        items.append(d)
    return items


@app.get("/api/public/cottages/{cottage_id}")
def public_cottage(cottage_id: str):
    c = get_or_404("cottage", cottage_id, "Cottage")
    d = to_str_id(c)
    d["owner"] = user_summary(c.get("owner_id"))
    return d


# ------- Auth -------
def login_response(user: dict, message: str) -> dict:
    token = create_session(str(user["_id"]))
    return {"message": message, "token": token, "user": public_user(user)}


@app.post("/api/auth/login")
def login(payload: LoginRequest):
    errors = combine(validate_required_string(payload.username, "Username"), validate_required_string(payload.password, "Password"))
    if errors:
        validation_failed(errors)
    user = require_db()["user"].find_one({"username": sanitize_string(payload.username)})
    if not user or not verify_password(payload.password, user):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not user.get("is_active"):
        raise HTTPException(status_code=403, detail="Account is not active. Waiting for administrator approval.")
    if user.get("user_type") == "admin":
        raise HTTPException(status_code=403, detail="Please use the admin login page")
    return login_response(user, "Login successful")


@app.post("/api/auth/admin-login")
def admin_login(payload: LoginRequest):
    errors = combine(validate_required_string(payload.username, "Username"), validate_required_string(payload.password, "Password"))
    if errors:
        validation_failed(errors)
    user = require_db()["user"].find_one({"username": sanitize_string(payload.username), "user_type": "admin"})
    if not user or not verify_password(payload.password, user):
        raise HTTPException(status_code=401, detail="Invalid admin credentials")
    return login_response(user, "Admin login successful")


@app.post("/api/auth/logout")
def logout(authorization: Optional[str] = Header(None)):
    token = bearer_token(authorization)
    if token:
        require_db()["session"].delete_one({"token": token})
    return {"ok": True}


@app.get("/api/auth/me")
def me(user=Depends(require_auth)):
    return public_user(user)


@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterRequest):
    errors = combine(
        validate_username(payload.username),
        validate_password(payload.password),
        validate_required_string(payload.first_name, "First name", 1, 100),
        validate_required_string(payload.last_name, "Last name", 1, 100),
        validate_gender(payload.gender),
        validate_required_string(payload.address, "Address", 5, 500),
        validate_phone(payload.phone),
        validate_email(payload.email),
        validate_credit_card(payload.credit_card),
        validate_user_type(payload.user_type),
    )
    if errors:
        validation_failed(errors)
    user_type = payload.user_type.strip().lower()
    if user_type == "admin":
        raise HTTPException(status_code=400, detail="Administrator accounts cannot be requested")

    database = require_db()
    username = sanitize_string(payload.username)
    email = sanitize_string(payload.email.lower())
    if database["user"].find_one({"username": username}):
        raise HTTPException(status_code=400, detail="Username already exists")
    if database["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    same_identity = {"$or": [{"username": username}, {"email": email}]}
    if database["registrationrequest"].find_one({**same_identity, "status": "pending"}):
        raise HTTPException(status_code=400, detail="Registration request already pending")
    if database["registrationrequest"].find_one({**same_identity, "status": "rejected"}):
        raise HTTPException(
            status_code=400,
            detail="This username or email was previously rejected and cannot be used for registration.",
        )

    salt = secrets.token_hex(8)
    request_doc = RegistrationRequestSchema(
        username=username,
        password_hash=hash_password(payload.password, salt),
        salt=salt,
        first_name=sanitize_string(payload.first_name),
        last_name=sanitize_string(payload.last_name),
        gender=normalize_gender(payload.gender),
        address=sanitize_string(payload.address),
        phone=sanitize_string(payload.phone),
        email=email,
        profile_picture=DEFAULT_PROFILE_PICTURE if user_type == "owner" else None,
        credit_card=clean_card_number(payload.credit_card),
        user_type=user_type,
    )
    request_id = create_document("registrationrequest", request_doc)
    logger.info("Registration request %s submitted for %s", request_id, username)
    return {
        "message": "Registration request submitted successfully. Waiting for administrator approval.",
        "request_id": request_id,
    }


@app.post("/api/auth/change-password")
def change_password(payload: ChangePasswordRequest):
    if not payload.username or not payload.old_password or not payload.new_password:
        raise HTTPException(status_code=400, detail="All fields are required")
    if payload.old_password == payload.new_password:
        raise HTTPException(status_code=400, detail="New password must be different from old password")
    errors = validate_password(payload.new_password)
    if errors:
        validation_failed(errors)
    database = require_db()
    user = database["user"].find_one({"username": payload.username})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not verify_password(payload.old_password, user):
        raise HTTPException(status_code=401, detail="Incorrect old password")
    salt = secrets.token_hex(8)
    database["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password, salt), "salt": salt, "updated_at": utcnow()}},
    )
    return {"message": "Password changed successfully"}


def profile_changes(user: dict, payload: ProfileUpdate) -> Dict[str, Any]:
    data = payload.model_dump(exclude_none=True)
    errors: List[str] = []
    if "phone" in data:
        errors += validate_phone(data["phone"])
    if "email" in data:
        errors += validate_email(data["email"])
        data["email"] = data["email"].strip().lower()
    if "credit_card" in data:
        errors += validate_credit_card(data["credit_card"])
        data["credit_card"] = clean_card_number(data["credit_card"])
    if "gender" in data:
        errors += validate_gender(data["gender"])
    if errors:
        validation_failed(errors)
    if "gender" in data:
        data["gender"] = normalize_gender(data["gender"])
    if "email" in data and require_db()["user"].find_one({"email": data["email"], "_id": {"$ne": user["_id"]}}):
        raise HTTPException(status_code=400, detail="Email already in use by another user")
    for key in ("first_name", "last_name", "address"):
        if key in data:
            data[key] = sanitize_string(data[key])
    return data


@app.put("/api/auth/profile/{user_id}")
def update_profile(user_id: str, payload: ProfileUpdate):
    user = get_or_404("user", user_id, "User")
    data = profile_changes(user, payload)
    database = require_db()
    if data:
        database["user"].update_one({"_id": user["_id"]}, {"$set": {**data, "updated_at": utcnow()}})
    return {"message": "Profile updated successfully", "user": public_user(database["user"].find_one({"_id": user["_id"]}))}


# ------- Cottages (tourist) -------
@app.get("/api/cottages")
def list_cottages(sort_by: str = "name", sort_order: str = "asc", name: Optional[str] = None, location: Optional[str] = None):
    items = []
    for c in find_cottages(name, location, sort_by, sort_order):
        d = to_str_id(c)
        d["owner"] = user_summary(c.get("owner_id"))
        d.update(rating_summary(d["id"]))
        items.append(d)
    return items


@app.get("/api/cottages/{cottage_id}")
def get_cottage(cottage_id: str):
    c = get_or_404("cottage", cottage_id, "Cottage")
    d = to_str_id(c)
    d["owner"] = user_summary(c.get("owner_id"))
    d.update(rating_summary(d["id"]))
    ratings = []
    for r in require_db()["rating"].find({"cottage_id": d["id"]}).sort("created_at", -1):
        item = to_str_id(r)
        item["tourist"] = user_summary(r.get("tourist_id"), ("first_name", "last_name"))
        ratings.append(item)
    d["ratings"] = ratings
    return d


@app.post("/api/cottages/{cottage_id}/check-availability")
def check_availability(cottage_id: str, req: AvailabilityRequest):
    cottage = get_or_404("cottage", cottage_id, "Cottage")
    check_in, check_out = as_naive_utc(req.check_in), as_naive_utc(req.check_out)
    verdict = booking.evaluate_availability(
        cottage, check_in, check_out, req.adults, req.children,
        confirmed_overlapping(cottage_id, check_in, check_out),
    )
    if not verdict.available:
        return JSONResponse(status_code=400, content=verdict.model_dump(exclude_none=True))
    return {
        **verdict.model_dump(),
        "summer_price": cottage["summer_price"],
        "winter_price": cottage["winter_price"],
    }


@app.post("/api/cottages/{cottage_id}/reserve", status_code=201)
def reserve(cottage_id: str, req: ReserveRequest):
    cottage = get_or_404("cottage", cottage_id, "Cottage")
    get_or_404("user", req.tourist_id, "Tourist")
    if req.credit_card:
        errors = validate_credit_card(req.credit_card)
        if errors:
            validation_failed(errors)

    # Availability is re-checked here; nothing holds the dates between check and write.
    check_in, check_out = as_naive_utc(req.check_in), as_naive_utc(req.check_out)
    verdict = booking.evaluate_availability(
        cottage, check_in, check_out, req.adults, req.children,
        confirmed_overlapping(cottage_id, check_in, check_out),
    )
    if not verdict.available:
        raise HTTPException(status_code=400, detail=verdict.message)

    reservation = ReservationSchema(
        cottage_id=cottage_id,
        tourist_id=req.tourist_id,
        check_in=check_in,
        check_out=check_out,
        adults=req.adults,
        children=req.children,
        total_price=verdict.total_price,
        status="pending",
        credit_card=clean_card_number(req.credit_card or ""),
        note=req.note or "",
    )
    rid = create_document("reservation", reservation)
    logger.info("Reservation %s requested for cottage %s", rid, cottage_id)
    return {
        "message": "Reservation request submitted! Waiting for owner approval.",
        "reservation": to_str_id(require_db()["reservation"].find_one({"_id": ObjectId(rid)})),
    }


@app.post("/api/cottages/{cottage_id}/rate")
def rate_cottage(cottage_id: str, req: RateRequest):
    if req.rating < 1 or req.rating > 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")
    if not req.comment or not req.comment.strip():
        raise HTTPException(status_code=400, detail="Comment is required")
    get_or_404("cottage", cottage_id, "Cottage")
    database = require_db()
    key = {"cottage_id": cottage_id, "tourist_id": req.tourist_id}
    existing = database["rating"].find_one(key)
    if existing:
        database["rating"].update_one(
            {"_id": existing["_id"]},
            {"$set": {"rating": req.rating, "comment": req.comment, "updated_at": utcnow()}},
        )
        return {"message": "Rating updated successfully"}
    create_document("rating", {**key, "rating": req.rating, "comment": req.comment})
    return JSONResponse(status_code=201, content={"message": "Rating added successfully"})


# ------- Reservations -------
@app.get("/api/reservations/tourist/{tourist_id}")
def tourist_reservations(tourist_id: str):
    database = require_db()
    now = utcnow()
    current, past = [], []
    for r in database["reservation"].find({"tourist_id": tourist_id, "status": {"$ne": "cancelled"}}).sort("check_in", -1):
        d = to_str_id(r)
        cottage = database["cottage"].find_one({"_id": ObjectId(r["cottage_id"])})
        d["cottage"] = {"name": cottage.get("name"), "location": cottage.get("location")} if cottage else None
        if r["check_out"] >= now:
            current.append(d)
            continue
        rating = database["rating"].find_one({"cottage_id": r["cottage_id"], "tourist_id": tourist_id})
        d["has_rated"] = rating is not None
        d["rating"] = rating.get("rating") if rating else None
        d["comment"] = rating.get("comment") if rating else None
        past.append(d)
    return {"current": current, "past": past}


@app.get("/api/reservations/owner/{owner_id}")
def owner_reservations(owner_id: str):
    database = require_db()
    cottages = {str(c["_id"]): c for c in database["cottage"].find({"owner_id": owner_id})}
    items = []
    for r in database["reservation"].find({"cottage_id": {"$in": list(cottages)}}).sort("check_in", -1):
        d = to_str_id(r)
        c = cottages[r["cottage_id"]]
        d["cottage"] = {"name": c.get("name"), "location": c.get("location")}
        d["tourist"] = user_summary(r.get("tourist_id"))
        items.append(d)
    return {"pending": [d for d in items if d["status"] == "pending"], "all": items}


def apply_transition(reservation: dict, changes: Dict[str, Any], message: str) -> dict:
    database = require_db()
    database["reservation"].update_one({"_id": reservation["_id"]}, {"$set": {**changes, "updated_at": utcnow()}})
    logger.info("Reservation %s -> %s", reservation["_id"], changes["status"])
    return {"message": message, "reservation": to_str_id(database["reservation"].find_one({"_id": reservation["_id"]}))}


@app.post("/api/reservations/{reservation_id}/confirm")
def confirm_reservation(reservation_id: str):
    reservation = get_or_404("reservation", reservation_id, "Reservation")
    try:
        status = booking.confirm(
            reservation,
            confirmed_overlapping(reservation["cottage_id"], reservation["check_in"], reservation["check_out"]),
        )
    except ReservationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return apply_transition(reservation, {"status": status}, "Reservation confirmed successfully")


@app.post("/api/reservations/{reservation_id}/reject")
def reject_reservation(reservation_id: str, req: RejectRequest):
    if not req.rejection_reason or not req.rejection_reason.strip():
        raise HTTPException(status_code=400, detail="Rejection reason is required")
    reservation = get_or_404("reservation", reservation_id, "Reservation")
    try:
        changes = booking.reject(reservation, req.rejection_reason)
    except ReservationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return apply_transition(reservation, changes, "Reservation rejected successfully")


@app.post("/api/reservations/{reservation_id}/cancel")
def cancel_reservation(reservation_id: str):
    reservation = get_or_404("reservation", reservation_id, "Reservation")
    try:
        status = booking.cancel(reservation)
    except ReservationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return apply_transition(reservation, {"status": status}, "Reservation cancelled successfully")


# ------- Owner cottages -------
def check_prices(summer_price: float, winter_price: float):
    if float(summer_price) == float(winter_price):
        raise HTTPException(status_code=400, detail="Summer and winter prices must be different.")


@app.get("/api/owner/cottages/owner/{owner_id}")
def owner_cottages(owner_id: str):
    docs = sorted(get_documents("cottage", {"owner_id": owner_id}), key=lambda c: c.get("created_at") or datetime.min, reverse=True)
    return [to_str_id(d) for d in docs]


def store_cottage(cottage: CottageSchema, message: str) -> dict:
    cid = create_document("cottage", cottage)
    logger.info("Cottage %s created for owner %s", cid, cottage.owner_id)
    return {"message": message, "cottage": to_str_id(require_db()["cottage"].find_one({"_id": ObjectId(cid)}))}


@app.post("/api/owner/cottages", status_code=201)
def create_cottage(payload: CottageCreate):
    check_prices(payload.summer_price, payload.winter_price)
    get_or_404("user", payload.owner_id, "Owner")
    return store_cottage(CottageSchema(**payload.model_dump()), "Cottage created successfully")


@app.post("/api/owner/cottages/import-json/{owner_id}", status_code=201)
def import_cottage(owner_id: str, payload: CottageImport):
    check_prices(payload.summer_price, payload.winter_price)
    get_or_404("user", owner_id, "Owner")
    # Images are never taken from the JSON document.
    cottage = CottageSchema(**payload.model_dump(), owner_id=owner_id, images=[])
    return store_cottage(cottage, "Cottage imported successfully from JSON")


@app.put("/api/owner/cottages/{cottage_id}")
def update_cottage(cottage_id: str, payload: CottageUpdate):
    cottage = get_or_404("cottage", cottage_id, "Cottage")
    data = payload.model_dump(exclude_none=True)
    check_prices(data.get("summer_price", cottage["summer_price"]), data.get("winter_price", cottage["winter_price"]))
    database = require_db()
    if data:
        database["cottage"].update_one({"_id": cottage["_id"]}, {"$set": {**data, "updated_at": utcnow()}})
    return {"message": "Cottage updated successfully", "cottage": to_str_id(database["cottage"].find_one({"_id": cottage["_id"]}))}


@app.delete("/api/owner/cottages/{cottage_id}")
def delete_cottage(cottage_id: str):
    cottage = get_or_404("cottage", cottage_id, "Cottage")
    database = require_db()
    active = database["reservation"].count_documents({
        "cottage_id": cottage_id,
        "status": {"$in": ["pending", "confirmed"]},
        "check_out": {"$gte": utcnow()},
    })
    if active > 0:
        raise HTTPException(status_code=400, detail="Cannot delete cottage with active or upcoming reservations")
    database["cottage"].delete_one({"_id": cottage["_id"]})
    logger.info("Cottage %s deleted", cottage_id)
    return {"message": "Cottage deleted successfully"}


@app.get("/api/owner/cottages/statistics/{owner_id}")
def owner_statistics(owner_id: str):
    database = require_db()
    cottages = list(database["cottage"].find({"owner_id": owner_id}))
    if not cottages:
        return {"reservations_per_month": [], "weekend_vs_weekday": []}

    per_month = {str(c["_id"]): {"cottage_id": str(c["_id"]), "cottage_name": c.get("name"), "months": {}} for c in cottages}
    week_split = {str(c["_id"]): {"cottage_id": str(c["_id"]), "cottage_name": c.get("name"), "weekend_days": 0, "weekday_days": 0} for c in cottages}

    # Only completed stays count.
    completed = database["reservation"].find({
        "cottage_id": {"$in": list(per_month)},
        "status": "confirmed",
        "check_out": {"$lt": utcnow()},
    })
    for r in completed:
        cid = r["cottage_id"]
        month = r["check_out"].strftime("%Y-%m")
        per_month[cid]["months"][month] = per_month[cid]["months"].get(month, 0) + 1
        for day in daterange(r["check_in"], r["check_out"]):
            if day.weekday() >= 5:
                week_split[cid]["weekend_days"] += 1
            else:
                week_split[cid]["weekday_days"] += 1

    return {"reservations_per_month": list(per_month.values()), "weekend_vs_weekday": list(week_split.values())}


# ------- Admin -------
@app.get("/api/admin/users")
def admin_list_users(admin=Depends(require_admin)):
    users = require_db()["user"].find({"user_type": {"$in": ["owner", "tourist"]}}).sort("created_at", -1)
    return [public_user(u) for u in users]


@app.get("/api/admin/users/{user_id}")
def admin_get_user(user_id: str, admin=Depends(require_admin)):
    return public_user(get_or_404("user", user_id, "User"))


@app.put("/api/admin/users/{user_id}")
def admin_update_user(user_id: str, payload: AdminUserUpdate, admin=Depends(require_admin)):
    user = get_or_404("user", user_id, "User")
    data = profile_changes(user, payload)
    database = require_db()
    if data:
        database["user"].update_one({"_id": user["_id"]}, {"$set": {**data, "updated_at": utcnow()}})
    return {"message": "User updated successfully", "user": public_user(database["user"].find_one({"_id": user["_id"]}))}


def set_user_active(user_id: str, active: bool) -> dict:
    user = get_or_404("user", user_id, "User")
    database = require_db()
    database["user"].update_one({"_id": user["_id"]}, {"$set": {"is_active": active, "updated_at": utcnow()}})
    logger.info("User %s %s", user_id, "activated" if active else "deactivated")
    return public_user(database["user"].find_one({"_id": user["_id"]}))


@app.put("/api/admin/users/{user_id}/deactivate")
def admin_deactivate_user(user_id: str, admin=Depends(require_admin)):
    return {"message": "User deactivated successfully", "user": set_user_active(user_id, False)}


@app.put("/api/admin/users/{user_id}/activate")
def admin_activate_user(user_id: str, admin=Depends(require_admin)):
    return {"message": "User activated successfully", "user": set_user_active(user_id, True)}


@app.delete("/api/admin/users/{user_id}")
def admin_delete_user(user_id: str, admin=Depends(require_admin)):
    user = get_or_404("user", user_id, "User")
    require_db()["user"].delete_one({"_id": user["_id"]})
    logger.info("User %s deleted", user_id)
    return {"message": "User deleted successfully"}


@app.get("/api/admin/registration-requests")
def admin_registration_requests(admin=Depends(require_admin)):
    return [public_user(r) for r in get_documents("registrationrequest", {"status": "pending"})]


def pending_request(request_id: str) -> dict:
    request_doc = get_or_404("registrationrequest", request_id, "Registration request")
    if request_doc.get("status") != "pending":
        raise HTTPException(status_code=400, detail="Request already processed")
    return request_doc


@app.post("/api/admin/registration-requests/{request_id}/approve")
def admin_approve_request(request_id: str, admin=Depends(require_admin)):
    request_doc = pending_request(request_id)
    database = require_db()
    if database["user"].find_one({"$or": [{"username": request_doc["username"]}, {"email": request_doc["email"]}]}):
        raise HTTPException(status_code=400, detail="Username or email already belongs to a user")
    user = UserSchema(
        **{k: request_doc.get(k) for k in UserSchema.model_fields if k not in ("is_active",)},
        is_active=True,
    )
    uid = create_document("user", user)
    database["registrationrequest"].update_one(
        {"_id": request_doc["_id"]},
        {"$set": {"status": "approved", "reviewed_at": utcnow(), "updated_at": utcnow()}},
    )
    logger.info("Registration request %s approved as user %s", request_id, uid)
    return {"message": "Registration request approved", "user": public_user(database["user"].find_one({"_id": ObjectId(uid)}))}


@app.post("/api/admin/registration-requests/{request_id}/reject")
def admin_reject_request(request_id: str, admin=Depends(require_admin)):
    request_doc = pending_request(request_id)
    require_db()["registrationrequest"].update_one(
        {"_id": request_doc["_id"]},
        {"$set": {"status": "rejected", "reviewed_at": utcnow(), "updated_at": utcnow()}},
    )
    logger.info("Registration request %s rejected", request_id)
    return {"message": "Registration request rejected"}


@app.get("/api/admin/cottages")
def admin_cottages(admin=Depends(require_admin)):
    database = require_db()
    now = utcnow()
    items = []
    for c in database["cottage"].find().sort("created_at", -1):
        d = to_str_id(c)
        latest = list(database["rating"].find({"cottage_id": d["id"]}).sort("created_at", -1).limit(3))
        summary = rating_summary(d["id"])
        d["owner"] = user_summary(c.get("owner_id"), ("first_name", "last_name", "email", "username"))
        d["last_three_ratings"] = [r["rating"] for r in latest]
        d["needs_attention"] = len(latest) >= 3 and all(r["rating"] < 2 for r in latest)
        d["average_rating"] = summary["average_rating"]
        d["total_ratings"] = summary["rating_count"]
        d["is_blocked"] = booking.is_blocked(c, now)
        items.append(d)
    return items


@app.post("/api/admin/cottages/{cottage_id}/block")
def admin_block_cottage(cottage_id: str, admin=Depends(require_admin)):
    cottage = get_or_404("cottage", cottage_id, "Cottage")
    blocked_until = utcnow() + booking.ADMIN_BLOCK_DURATION
    require_db()["cottage"].update_one({"_id": cottage["_id"]}, {"$set": {"blocked_until": blocked_until, "updated_at": utcnow()}})
    logger.info("Cottage %s blocked until %s", cottage_id, blocked_until.isoformat())
    return {"message": "Cottage blocked for 48 hours", "blocked_until": blocked_until}


@app.post("/api/admin/cottages/{cottage_id}/unblock")
def admin_unblock_cottage(cottage_id: str, admin=Depends(require_admin)):
    cottage = get_or_404("cottage", cottage_id, "Cottage")
    require_db()["cottage"].update_one({"_id": cottage["_id"]}, {"$set": {"blocked_until": None, "updated_at": utcnow()}})
    logger.info("Cottage %s unblocked", cottage_id)
    return {"message": "Cottage unblocked successfully"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Configured"
            response["database_name"] = db.name if hasattr(db, 'name') else "✅ Connected"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
