"""Auxiliary records kept by staff: packages, maintenance, damage, staff, shifts,
the walk-up waitlist and prebookings."""
import logging
import re
from datetime import datetime

from sqlalchemy.orm import Session

from . import services
from .errors import AuthenticationError, Conflict, NotFound, ValidationError
from .models import (
    Booking, DamageReport, MaintenanceLog, Package, Prebooking, Shift, Staff, WaitlistEntry,
)
from .services import _require_int, _require_text, get_quad, serialized

logger = logging.getLogger(__name__)

MAINTENANCE_TYPES = ("service", "fuel", "repair", "inspection")
DAMAGE_SEVERITIES = ("minor", "moderate", "severe")
STAFF_ROLES = ("operator", "manager")


def _get(db: Session, model, record_id, label):
    record = db.get(model, record_id)
    if not record:
        raise NotFound(f"{label} not found")
    return record


# ================== PACKAGES ==================
def list_packages(db: Session, active_only=False):
    query = db.query(Package)
    if active_only:
        query = query.filter(Package.is_active == 1)
    return query.order_by(Package.id.desc()).all()


@serialized
def create_package(db: Session, name, rides, price, description="") -> Package:
    package = Package(
        name=_require_text(name, "Name"),
        description=(description or "").strip(),
        rides=_require_int(rides, "Rides", minimum=1),
        price=_require_int(price, "Price", minimum=0),
        is_active=1,
    )
    db.add(package)
    db.commit()
    db.refresh(package)
    return package


@serialized
def update_package(db: Session, package_id: int, name, rides, price, description="") -> Package:
    name = _require_text(name, "Name")
    _require_int(rides, "Rides", minimum=1)
    _require_int(price, "Price", minimum=0)
    package = _get(db, Package, package_id, "Package")
    package.name = name
    package.rides = rides
    package.price = price
    package.description = (description or "").strip()
    db.commit()
    return package


@serialized
def toggle_package(db: Session, package_id: int, is_active) -> Package:
    package = _get(db, Package, package_id, "Package")
    package.is_active = 1 if is_active else 0
    db.commit()
    return package


@serialized
def delete_package(db: Session, package_id: int):
    db.delete(_get(db, Package, package_id, "Package"))
    db.commit()


# ================== MAINTENANCE ==================
def list_maintenance(db: Session, quad_id=None):
    query = db.query(MaintenanceLog)
    if quad_id is not None:
        query = query.filter(MaintenanceLog.quad_id == quad_id)
    return query.order_by(MaintenanceLog.date.desc(), MaintenanceLog.id.desc()).all()


@serialized
def create_maintenance_log(
    db: Session, quad_id: int, type, description="", cost=0, operator_id=None, now=None
) -> MaintenanceLog:
    if type not in MAINTENANCE_TYPES:
        raise ValidationError("Invalid maintenance type")
    _require_int(cost, "Cost", minimum=0)
    quad = get_quad(db, quad_id)
    operator = _get(db, Staff, operator_id, "Operator") if operator_id is not None else None

    log = MaintenanceLog(
        quad_id=quad.id,
        quad_name=quad.name,
        type=type,
        description=(description or "").strip(),
        cost=cost,
        date=now or datetime.now(),
        operator_id=operator.id if operator else None,
        operator_name=operator.name if operator else None,
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    logger.info("Maintenance (%s) logged for quad %s", log.type, quad.id)
    return log


@serialized
def delete_maintenance_log(db: Session, log_id: int):
    db.delete(_get(db, MaintenanceLog, log_id, "Maintenance log"))
    db.commit()


def total_maintenance_cost(db: Session, quad_id=None) -> int:
    return sum(log.cost for log in list_maintenance(db, quad_id))


# ================== DAMAGE ==================
def list_damage_reports(db: Session, unresolved_only=False):
    query = db.query(DamageReport)
    if unresolved_only:
        query = query.filter(DamageReport.resolved.is_(False))
    return query.order_by(DamageReport.date.desc(), DamageReport.id.desc()).all()


@serialized
def create_damage_report(
    db: Session, quad_id: int, description, severity, booking_id=None,
    photo_url=None, repair_cost=0, now=None,
) -> DamageReport:
    description = _require_text(description, "Description")
    if severity not in DAMAGE_SEVERITIES:
        raise ValidationError("Invalid severity")
    _require_int(repair_cost, "Repair cost", minimum=0)
    quad = get_quad(db, quad_id)
    booking = _get(db, Booking, booking_id, "Booking") if booking_id is not None else None

    report = DamageReport(
        quad_id=quad.id,
        quad_name=quad.name,
        booking_id=booking.id if booking else None,
        customer_name=booking.customer_name if booking else None,
        description=description,
        photo_url=photo_url or None,
        severity=severity,
        repair_cost=repair_cost,
        resolved=False,
        date=now or datetime.now(),
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    logger.info("Damage report %s (%s) filed for quad %s", report.id, severity, quad.id)
    return report


@serialized
def resolve_damage_report(db: Session, report_id: int, repair_cost=None) -> DamageReport:
    report = _get(db, DamageReport, report_id, "Damage report")
    if repair_cost is not None:
        report.repair_cost = _require_int(repair_cost, "Repair cost", minimum=0)
    report.resolved = True
    db.commit()
    return report


# ================== STAFF ==================
def _check_pin(pin):
    if not pin or not re.fullmatch(r"[0-9]{4}", pin):
        raise ValidationError("Staff PIN must be 4 digits")
    return pin


def _pin_taken(db: Session, pin, exclude_id=None):
    query = db.query(Staff.id).filter(Staff.pin == pin, Staff.is_active.is_(True))
    if exclude_id is not None:
        query = query.filter(Staff.id != exclude_id)
    return query.first() is not None


def list_staff(db: Session, active_only=False):
    query = db.query(Staff)
    if active_only:
        query = query.filter(Staff.is_active.is_(True))
    return query.order_by(Staff.id).all()


@serialized
def create_staff(db: Session, name, phone, pin, role="operator") -> Staff:
    name = _require_text(name, "Name")
    phone = _require_text(phone, "Phone")
    _check_pin(pin)
    if role not in STAFF_ROLES:
        raise ValidationError("Invalid staff role")
    if _pin_taken(db, pin):
        raise Conflict("PIN already in use")

    staff = Staff(name=name, phone=phone, pin=pin, role=role, is_active=True)
    db.add(staff)
    db.commit()
    db.refresh(staff)
    return staff


@serialized
def update_staff(db: Session, staff_id: int, name, phone, role, pin=None) -> Staff:
    name = _require_text(name, "Name")
    phone = _require_text(phone, "Phone")
    if role not in STAFF_ROLES:
        raise ValidationError("Invalid staff role")
    staff = _get(db, Staff, staff_id, "Staff member")
    if pin is not None:
        _check_pin(pin)
        if _pin_taken(db, pin, exclude_id=staff.id):
            raise Conflict("PIN already in use")
        staff.pin = pin
    staff.name = name
    staff.phone = phone
    staff.role = role
    db.commit()
    return staff


@serialized
def deactivate_staff(db: Session, staff_id: int) -> Staff:
    staff = _get(db, Staff, staff_id, "Staff member")
    staff.is_active = False
    db.commit()
    return staff


def staff_login(db: Session, pin) -> Staff:
    staff = db.query(Staff).filter(Staff.pin == pin, Staff.is_active.is_(True)).first()
    if not staff:
        raise AuthenticationError("Invalid PIN")
    return staff


# ================== SHIFTS ==================
def list_shifts(db: Session, open_only=False):
    query = db.query(Shift)
    if open_only:
        query = query.filter(Shift.end_time.is_(None))
    return query.order_by(Shift.id.desc()).all()


@serialized
def start_shift(db: Session, staff_id: int, now=None) -> Shift:
    staff = _get(db, Staff, staff_id, "Staff member")
    if not staff.is_active:
        raise Conflict("Staff member is inactive")
    if db.query(Shift.id).filter(Shift.staff_id == staff.id, Shift.end_time.is_(None)).first():
        raise Conflict("Shift already open")

    shift = Shift(staff_id=staff.id, staff_name=staff.name, start_time=now or datetime.now(), notes="")
    db.add(shift)
    db.commit()
    db.refresh(shift)
    return shift


@serialized
def end_shift(db: Session, shift_id: int, notes=None, now=None) -> Shift:
    shift = _get(db, Shift, shift_id, "Shift")
    if shift.end_time is not None:
        raise Conflict("Shift already ended")
    shift.end_time = now or datetime.now()
    if notes:
        shift.notes = notes.strip()
    db.commit()
    return shift


# ================== WAITLIST ==================
def list_waitlist(db: Session):
    return db.query(WaitlistEntry).order_by(WaitlistEntry.added_at, WaitlistEntry.id).all()


@serialized
def add_to_waitlist(db: Session, customer_name, customer_phone, duration, now=None) -> WaitlistEntry:
    entry = WaitlistEntry(
        customer_name=_require_text(customer_name, "Customer name"),
        customer_phone=_require_text(customer_phone, "Customer phone"),
        duration=_require_int(duration, "Duration", minimum=1),
        added_at=now or datetime.now(),
        notified=False,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


@serialized
def mark_waitlist_notified(db: Session, entry_id: int) -> WaitlistEntry:
    entry = _get(db, WaitlistEntry, entry_id, "Waitlist entry")
    entry.notified = True
    db.commit()
    return entry


def get_waitlist_entry(db: Session, entry_id: int) -> WaitlistEntry:
    return _get(db, WaitlistEntry, entry_id, "Waitlist entry")


@serialized
def remove_from_waitlist(db: Session, entry_id: int):
    db.delete(_get(db, WaitlistEntry, entry_id, "Waitlist entry"))
    db.commit()


# ================== PREBOOKINGS ==================
def list_prebookings(db: Session, customer_phone=None):
    query = db.query(Prebooking)
    if customer_phone:
        query = query.filter(Prebooking.customer_phone == customer_phone.strip())
    return query.order_by(Prebooking.scheduled_for, Prebooking.id).all()


@serialized
def create_prebooking(
    db: Session, customer_name, customer_phone, duration, price, scheduled_for,
    quad_id=None, now=None,
) -> Prebooking:
    customer_name = _require_text(customer_name, "Customer name")
    customer_phone = _require_text(customer_phone, "Customer phone")
    _require_int(duration, "Duration", minimum=1)
    _require_int(price, "Price", minimum=0)
    now = now or datetime.now()
    if not isinstance(scheduled_for, datetime):
        raise ValidationError("Scheduled time is required")
    if scheduled_for.tzinfo is not None:
        scheduled_for = scheduled_for.astimezone().replace(tzinfo=None)
    if scheduled_for <= now:
        raise ValidationError("Scheduled time must be in the future")
    quad = get_quad(db, quad_id) if quad_id is not None else None

    prebooking = Prebooking(
        quad_id=quad.id if quad else None,
        quad_name=quad.name if quad else None,
        customer_name=customer_name,
        customer_phone=customer_phone,
        duration=duration,
        price=price,
        scheduled_for=scheduled_for,
        status="pending",
        created_at=now,
    )
    db.add(prebooking)
    db.commit()
    db.refresh(prebooking)
    return prebooking


@serialized
def confirm_prebooking(db: Session, prebooking_id: int) -> Prebooking:
    prebooking = _get(db, Prebooking, prebooking_id, "Prebooking")
    if prebooking.status != "pending":
        raise Conflict(f"Prebooking is {prebooking.status}")
    prebooking.status = "confirmed"
    db.commit()
    return prebooking


@serialized
def cancel_prebooking(db: Session, prebooking_id: int) -> Prebooking:
    prebooking = _get(db, Prebooking, prebooking_id, "Prebooking")
    if prebooking.status not in ("pending", "confirmed"):
        raise Conflict(f"Prebooking is {prebooking.status}")
    prebooking.status = "cancelled"
    db.commit()
    return prebooking


@serialized
def convert_prebooking(db: Session, prebooking_id: int, quad_id=None, now=None):
    """Start the ride for a prebooking; returns ``(prebooking, booking)``."""
    prebooking = _get(db, Prebooking, prebooking_id, "Prebooking")
    if prebooking.status not in ("pending", "confirmed"):
        raise Conflict(f"Prebooking is {prebooking.status}")
    quad_id = quad_id if quad_id is not None else prebooking.quad_id
    if quad_id is None:
        raise ValidationError("Choose a quad for this prebooking")

    booking = services.create_booking(
        db,
        quad_id=quad_id,
        customer_name=prebooking.customer_name,
        customer_phone=prebooking.customer_phone,
        duration=prebooking.duration,
        price=prebooking.price,
        original_price=prebooking.price,
        is_prebooked=True,
        prebook_time=prebooking.scheduled_for,
        now=now,
    )
    prebooking.status = "converted"
    prebooking.booking_id = booking.id
    db.commit()
    logger.info("Prebooking %s converted into booking %s", prebooking.id, booking.id)
    return prebooking, booking
