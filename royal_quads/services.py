"""Core domain operations: fleet, bookings, pricing, promotions, users and the admin PIN.

Every function takes an open SQLAlchemy session as its first argument and is
the only place the corresponding records are mutated. Mutating operations run
under a single process-wide lock and commit before returning.
"""
import logging
import math
import random
import re
import string
import threading
from datetime import datetime, timedelta
from functools import wraps

from sqlalchemy.orm import Session

from .config import (
    ADMIN_PIN_KEY, DEFAULT_ADMIN_PIN, MIN_PASSWORD_LENGTH, OVERTIME_RATE, PHONE_PATTERN,
    PRICING, QUAD_STATUSES, RECEIPT_PREFIX,
)
from .errors import AuthenticationError, Conflict, NotFound, ValidationError
from .models import AppSetting, Booking, Promotion, Quad, Staff, User

logger = logging.getLogger(__name__)

_write_lock = threading.RLock()


def serialized(func):
    """Run ``func`` as one unit of work: one caller at a time, rolled back on failure."""

    @wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        with _write_lock:
            try:
                return func(db, *args, **kwargs)
            except Exception:
                db.rollback()
                raise

    return wrapper


def _require_text(value, field):
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def _require_int(value, field, minimum=None, maximum=None):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be a whole number")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be at most {maximum}")
    return value


def validate_phone(phone):
    phone = _require_text(phone, "Phone")
    if not re.match(PHONE_PATTERN, phone):
        raise ValidationError("Enter a valid phone number, e.g. 0712345678")
    return phone


# ================== SEED ==================
@serialized
def seed_defaults(db: Session, quad_count=5, admin_pin=DEFAULT_ADMIN_PIN):
    """Seed ``Quad 1..N`` into an empty fleet and initialise the admin PIN."""
    if db.query(Quad).count() == 0:
        for i in range(1, quad_count + 1):
            db.add(Quad(name=f"Quad {i}", status="available"))
        logger.info("Seeded %d quads", quad_count)
    if db.get(AppSetting, ADMIN_PIN_KEY) is None:
        db.add(AppSetting(key=ADMIN_PIN_KEY, value=admin_pin))
    db.commit()


# ================== QUADS ==================
def heal_fleet(db: Session):
    """Reset quads flagged ``rented`` that no active booking references.

    Changes are left pending on the session; the caller commits.
    """
    active_ids = {
        quad_id for (quad_id,) in db.query(Booking.quad_id).filter(Booking.status == "active")
    }
    healed = []
    for quad in db.query(Quad).filter(Quad.status == "rented").all():
        if quad.id not in active_ids:
            quad.status = "available"
            healed.append(quad.id)
    if healed:
        logger.info("Healed orphaned rented quads: %s", healed)
    return healed


@serialized
def list_quads(db: Session):
    if heal_fleet(db):
        db.commit()
    return db.query(Quad).order_by(Quad.id).all()


def get_quad(db: Session, quad_id: int) -> Quad:
    quad = db.get(Quad, quad_id)
    if not quad:
        raise NotFound("Quad not found")
    return quad


@serialized
def read_quad(db: Session, quad_id: int) -> Quad:
    """Single-quad read, healed the same way as ``list_quads``."""
    if heal_fleet(db):
        db.commit()
    return get_quad(db, quad_id)


def _check_status(status):
    if status not in QUAD_STATUSES:
        raise ValidationError("Invalid status")
    return status


@serialized
def create_quad(db: Session, name, image_url=None, imei=None) -> Quad:
    quad = Quad(
        name=_require_text(name, "Name"),
        status="available",
        image_url=image_url or None,
        imei=imei or None,
    )
    db.add(quad)
    db.commit()
    db.refresh(quad)
    logger.info("Quad %s created (%s)", quad.id, quad.name)
    return quad


@serialized
def update_quad(db: Session, quad_id: int, name, status, image_url=None, imei=None) -> Quad:
    name = _require_text(name, "Name")
    _check_status(status)
    quad = get_quad(db, quad_id)
    quad.name = name
    quad.status = status
    quad.image_url = image_url or None
    quad.imei = imei or None
    db.commit()
    return quad


@serialized
def update_quad_status(db: Session, quad_id: int, status) -> Quad:
    """Force a quad's status. Booking state is not consulted."""
    _check_status(status)
    quad = get_quad(db, quad_id)
    if quad.status != status:
        logger.info("Quad %s status forced %s -> %s", quad.id, quad.status, status)
    quad.status = status
    db.commit()
    return quad


# ================== PRICING ==================
def final_price(original_price, discount_percentage) -> int:
    # half-up, matching Math.round on the storefront
    return int(math.floor(original_price * (1 - discount_percentage / 100) + 0.5))


def list_pricing():
    return [dict(entry) for entry in PRICING]


def price_for_duration(duration):
    for entry in PRICING:
        if entry["duration"] == duration:
            return entry["price"]
    raise ValidationError(f"No price for a {duration} minute ride")


def quote_price(db: Session, duration, promo_code=None):
    original = price_for_duration(duration)
    discount = 0
    code = None
    if promo_code:
        promo = validate_promotion(db, promo_code)
        discount = promo.discount_percentage
        code = promo.code
    return {
        "duration": duration,
        "originalPrice": original,
        "discountPercentage": discount,
        "promoCode": code,
        "price": final_price(original, discount),
    }


# ================== BOOKINGS ==================
def _new_receipt_id(db: Session):
    alphabet = string.ascii_uppercase + string.digits
    while True:
        receipt_id = RECEIPT_PREFIX + "".join(random.choices(alphabet, k=6))
        if not db.query(Booking.id).filter(Booking.receipt_id == receipt_id).first():
            return receipt_id


@serialized
def create_booking(
    db: Session,
    quad_id: int,
    customer_name,
    customer_phone,
    duration,
    price,
    original_price=None,
    promo_code=None,
    user_id=None,
    group_size=1,
    id_photo_url=None,
    deposit_amount=0,
    operator_id=None,
    waiver_signed=False,
    is_prebooked=False,
    prebook_time=None,
    now=None,
) -> Booking:
    customer_name = _require_text(customer_name, "Customer name")
    customer_phone = _require_text(customer_phone, "Customer phone")
    _require_int(duration, "Duration", minimum=1)
    _require_int(price, "Price", minimum=0)
    if original_price is None:
        original_price = price
    _require_int(original_price, "Original price", minimum=0)
    _require_int(group_size, "Group size", minimum=1)
    _require_int(deposit_amount, "Deposit", minimum=0)

    if user_id is not None and db.get(User, user_id) is None:
        raise NotFound("User not found")
    if operator_id is not None and db.get(Staff, operator_id) is None:
        raise NotFound("Operator not found")

    heal_fleet(db)
    quad = db.get(Quad, quad_id)
    if not quad:
        raise NotFound("Quad not found")
    if quad.status != "available":
        raise Conflict("Quad is not available")

    now = now or datetime.now()
    booking = Booking(
        quad_id=quad.id,
        user_id=user_id,
        customer_name=customer_name,
        customer_phone=customer_phone,
        duration=duration,
        price=price,
        original_price=original_price,
        promo_code=promo_code.strip().upper() if promo_code else None,
        start_time=now,
        status="active",
        receipt_id=_new_receipt_id(db),
        quad_name=quad.name,
        quad_image_url=quad.image_url,
        quad_imei=quad.imei,
        is_prebooked=is_prebooked,
        prebook_time=prebook_time,
        group_size=group_size,
        id_photo_url=id_photo_url or None,
        waiver_signed=bool(waiver_signed),
        waiver_signed_at=now if waiver_signed else None,
        deposit_amount=deposit_amount,
        deposit_returned=False,
        operator_id=operator_id,
        overtime_minutes=0,
        overtime_charge=0,
    )
    db.add(booking)
    quad.status = "rented"
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s (%s) created on quad %s", booking.id, booking.receipt_id, quad.id)
    return booking


def get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    return booking


def get_booking_by_receipt(db: Session, receipt_id: str) -> Booking:
    booking = db.query(Booking).filter(Booking.receipt_id == receipt_id.strip().upper()).first()
    if not booking:
        raise NotFound("Booking not found")
    return booking


def list_active_bookings(db: Session):
    return db.query(Booking).filter(Booking.status == "active").order_by(Booking.id).all()


def list_booking_history(db: Session):
    return (
        db.query(Booking)
        .filter(Booking.status == "completed")
        .order_by(Booking.end_time.desc(), Booking.id.desc())
        .all()
    )


def list_all_bookings(db: Session):
    return db.query(Booking).order_by(Booking.id).all()


def list_user_history(db: Session, user_id: int):
    return db.query(Booking).filter(Booking.user_id == user_id).order_by(Booking.id.desc()).all()


@serialized
def complete_booking(db: Session, booking_id: int, overtime_minutes=0, now=None) -> Booking:
    _require_int(overtime_minutes, "Overtime minutes", minimum=0)
    booking = get_booking(db, booking_id)
    if booking.status == "completed":
        raise Conflict("Booking already completed")

    booking.status = "completed"
    booking.end_time = now or datetime.now()
    booking.overtime_minutes = overtime_minutes
    booking.overtime_charge = overtime_minutes * OVERTIME_RATE

    # back to available even if an admin moved it to maintenance meanwhile
    quad = db.get(Quad, booking.quad_id)
    if quad:
        quad.status = "available"
    db.commit()
    logger.info(
        "Booking %s completed, overtime %d min (%d KES)",
        booking.id, booking.overtime_minutes, booking.overtime_charge,
    )
    return booking


def ride_clock(db: Session, booking_id: int, now=None):
    """Remaining time and overtime of a ride, derived from the wall clock."""
    booking = get_booking(db, booking_id)
    ends_at = booking.start_time + timedelta(minutes=booking.duration)
    if booking.status == "completed":
        return {
            "bookingId": booking.id,
            "status": booking.status,
            "endsAt": ends_at.isoformat(),
            "remainingSeconds": 0,
            "overtimeSeconds": booking.overtime_minutes * 60,
            "overtimeMinutes": booking.overtime_minutes,
            "overtimeCharge": booking.overtime_charge,
        }

    now = now or datetime.now()
    delta = int((ends_at - now).total_seconds())
    remaining = max(delta, 0)
    overtime_seconds = max(-delta, 0)
    overtime_minutes = math.ceil(overtime_seconds / 60)
    return {
        "bookingId": booking.id,
        "status": booking.status,
        "endsAt": ends_at.isoformat(),
        "remainingSeconds": remaining,
        "overtimeSeconds": overtime_seconds,
        "overtimeMinutes": overtime_minutes,
        "overtimeCharge": overtime_minutes * OVERTIME_RATE,
    }


@serialized
def submit_feedback(db: Session, booking_id: int, rating, feedback=None) -> Booking:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Valid rating (1-5) is required")
    booking = get_booking(db, booking_id)
    booking.rating = rating
    booking.feedback = feedback or None
    db.commit()
    return booking


@serialized
def return_deposit(db: Session, booking_id: int) -> Booking:
    booking = get_booking(db, booking_id)
    booking.deposit_returned = True
    db.commit()
    return booking


@serialized
def sign_waiver(db: Session, booking_id: int, now=None) -> Booking:
    booking = get_booking(db, booking_id)
    booking.waiver_signed = True
    booking.waiver_signed_at = now or datetime.now()
    db.commit()
    return booking


# ================== PROMOTIONS ==================
def list_promotions(db: Session):
    return db.query(Promotion).order_by(Promotion.id.desc()).all()


def get_promotion(db: Session, promotion_id: int) -> Promotion:
    promo = db.get(Promotion, promotion_id)
    if not promo:
        raise NotFound("Promotion not found")
    return promo


@serialized
def create_promotion(db: Session, code, discount_percentage) -> Promotion:
    code = _require_text(code, "Code").upper()
    if isinstance(discount_percentage, bool) or not isinstance(discount_percentage, int) \
            or not 1 <= discount_percentage <= 100:
        raise ValidationError("Discount must be 1-100%")
    if db.query(Promotion.id).filter(Promotion.code == code).first():
        raise Conflict("Promo code already exists")

    promo = Promotion(code=code, discount_percentage=discount_percentage, is_active=1)
    db.add(promo)
    db.commit()
    db.refresh(promo)
    logger.info("Promotion %s created (%d%%)", promo.code, promo.discount_percentage)
    return promo


def validate_promotion(db: Session, code) -> Promotion:
    code = (code or "").strip().upper()
    promo = (
        db.query(Promotion)
        .filter(Promotion.code == code, Promotion.is_active == 1)
        .first()
    )
    if not promo:
        raise NotFound("Invalid or inactive promo code")
    return promo


@serialized
def toggle_promotion(db: Session, promotion_id: int, is_active) -> Promotion:
    promo = get_promotion(db, promotion_id)
    promo.is_active = 1 if is_active else 0
    db.commit()
    return promo


@serialized
def delete_promotion(db: Session, promotion_id: int):
    promo = get_promotion(db, promotion_id)
    db.delete(promo)
    db.commit()


# ================== USERS ==================
@serialized
def register(db: Session, name, phone, password) -> User:
    name = _require_text(name, "Name")
    phone = validate_phone(phone)
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if db.query(User.id).filter(User.phone == phone).first():
        raise Conflict("Phone number already registered")

    user = User(name=name, phone=phone, password=password, role="user")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def login(db: Session, phone, password) -> User:
    # plaintext comparison
    user = db.query(User).filter(User.phone == (phone or "").strip(), User.password == password).first()
    if not user:
        raise AuthenticationError("Invalid phone number or password")
    return user


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


# ================== ADMIN PIN ==================
def get_admin_pin(db: Session) -> str:
    setting = db.get(AppSetting, ADMIN_PIN_KEY)
    return setting.value if setting else DEFAULT_ADMIN_PIN


def verify_admin_pin(db: Session, pin) -> bool:
    if pin != get_admin_pin(db):
        raise AuthenticationError("Incorrect PIN")
    return True


@serialized
def change_admin_pin(db: Session, current_pin, new_pin):
    verify_admin_pin(db, current_pin)
    if not new_pin or not re.fullmatch(r"[0-9]{4,8}", new_pin):
        raise ValidationError("PIN must be 4-8 digits")
    setting = db.get(AppSetting, ADMIN_PIN_KEY)
    if setting is None:
        db.add(AppSetting(key=ADMIN_PIN_KEY, value=new_pin))
    else:
        setting.value = new_pin
    db.commit()
    logger.info("Admin PIN changed")
