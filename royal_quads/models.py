from datetime import datetime

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text,
)

from .database import Base


def _iso(value: datetime):
    return value.isoformat() if value else None


class Quad(Base):
    __tablename__ = "quads"
    __table_args__ = (
        CheckConstraint("status IN ('available', 'rented', 'maintenance')", name="ck_quad_status"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="available")
    image_url = Column(String)
    imei = Column(String)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "imageUrl": self.image_url,
            "imei": self.imei,
        }


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="ck_user_role"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False, unique=True)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False, default="user")

    def to_dict(self):
        # password is never serialized
        return {"id": self.id, "name": self.name, "phone": self.phone, "role": self.role}


class Promotion(Base):
    __tablename__ = "promotions"
    __table_args__ = (
        CheckConstraint("discount_percentage BETWEEN 1 AND 100", name="ck_promo_discount"),
        CheckConstraint("is_active IN (0, 1)", name="ck_promo_active"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, nullable=False, unique=True)
    discount_percentage = Column(Integer, nullable=False)
    is_active = Column(Integer, nullable=False, default=1)

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "discountPercentage": self.discount_percentage,
            "isActive": self.is_active,
        }


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("status IN ('active', 'completed')", name="ck_booking_status"),
        CheckConstraint("rating IS NULL OR rating BETWEEN 1 AND 5", name="ck_booking_rating"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    quad_id = Column(Integer, ForeignKey("quads.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Integer, nullable=False)  # KES
    original_price = Column(Integer, nullable=False)
    promo_code = Column(String)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)
    status = Column(String, nullable=False, default="active")
    receipt_id = Column(String, unique=True, nullable=False)
    rating = Column(Integer)
    feedback = Column(Text)

    # copied from the quad at creation time
    quad_name = Column(String, nullable=False)
    quad_image_url = Column(String)
    quad_imei = Column(String)

    is_prebooked = Column(Boolean, nullable=False, default=False)
    prebook_time = Column(DateTime)
    group_size = Column(Integer, nullable=False, default=1)
    id_photo_url = Column(String)
    waiver_signed = Column(Boolean, nullable=False, default=False)
    waiver_signed_at = Column(DateTime)
    deposit_amount = Column(Integer, nullable=False, default=0)
    deposit_returned = Column(Boolean, nullable=False, default=False)
    operator_id = Column(Integer, ForeignKey("staff.id"))
    overtime_minutes = Column(Integer, nullable=False, default=0)
    overtime_charge = Column(Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "quadId": self.quad_id,
            "userId": self.user_id,
            "customerName": self.customer_name,
            "customerPhone": self.customer_phone,
            "duration": self.duration,
            "price": self.price,
            "originalPrice": self.original_price,
            "promoCode": self.promo_code,
            "startTime": _iso(self.start_time),
            "endTime": _iso(self.end_time),
            "status": self.status,
            "receiptId": self.receipt_id,
            "rating": self.rating,
            "feedback": self.feedback,
            "quadName": self.quad_name,
            "quadImageUrl": self.quad_image_url,
            "quadImei": self.quad_imei,
            "isPrebooked": self.is_prebooked,
            "prebookTime": _iso(self.prebook_time),
            "groupSize": self.group_size,
            "idPhotoUrl": self.id_photo_url,
            "waiverSigned": self.waiver_signed,
            "waiverSignedAt": _iso(self.waiver_signed_at),
            "depositAmount": self.deposit_amount,
            "depositReturned": self.deposit_returned,
            "operatorId": self.operator_id,
            "overtimeMinutes": self.overtime_minutes,
            "overtimeCharge": self.overtime_charge,
        }


class Package(Base):
    __tablename__ = "packages"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    rides = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)
    is_active = Column(Integer, nullable=False, default=1)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "rides": self.rides,
            "price": self.price,
            "isActive": self.is_active,
        }


class MaintenanceLog(Base):
    __tablename__ = "maintenance_logs"
    __table_args__ = (
        CheckConstraint("type IN ('service', 'fuel', 'repair', 'inspection')", name="ck_maintenance_type"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    quad_id = Column(Integer, ForeignKey("quads.id"), nullable=False, index=True)
    quad_name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    cost = Column(Integer, nullable=False, default=0)
    date = Column(DateTime, nullable=False, default=datetime.now)
    operator_id = Column(Integer, ForeignKey("staff.id"))
    operator_name = Column(String)

    def to_dict(self):
        return {
            "id": self.id,
            "quadId": self.quad_id,
            "quadName": self.quad_name,
            "type": self.type,
            "description": self.description,
            "cost": self.cost,
            "date": _iso(self.date),
            "operatorId": self.operator_id,
            "operatorName": self.operator_name,
        }


class DamageReport(Base):
    __tablename__ = "damage_reports"
    __table_args__ = (
        CheckConstraint("severity IN ('minor', 'moderate', 'severe')", name="ck_damage_severity"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    quad_id = Column(Integer, ForeignKey("quads.id"), nullable=False, index=True)
    quad_name = Column(String, nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"))
    customer_name = Column(String)
    description = Column(Text, nullable=False)
    photo_url = Column(String)
    severity = Column(String, nullable=False)
    repair_cost = Column(Integer, nullable=False, default=0)
    resolved = Column(Boolean, nullable=False, default=False)
    date = Column(DateTime, nullable=False, default=datetime.now)

    def to_dict(self):
        return {
            "id": self.id,
            "quadId": self.quad_id,
            "quadName": self.quad_name,
            "bookingId": self.booking_id,
            "customerName": self.customer_name,
            "description": self.description,
            "photoUrl": self.photo_url,
            "severity": self.severity,
            "repairCost": self.repair_cost,
            "resolved": self.resolved,
            "date": _iso(self.date),
        }


class Staff(Base):
    __tablename__ = "staff"
    __table_args__ = (
        CheckConstraint("role IN ('operator', 'manager')", name="ck_staff_role"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    pin = Column(String, nullable=False)
    role = Column(String, nullable=False, default="operator")
    is_active = Column(Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "isActive": self.is_active,
        }


class Shift(Base):
    __tablename__ = "shifts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False, index=True)
    staff_name = Column(String, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime)
    notes = Column(Text, nullable=False, default="")

    def to_dict(self):
        return {
            "id": self.id,
            "staffId": self.staff_id,
            "staffName": self.staff_name,
            "startTime": _iso(self.start_time),
            "endTime": _iso(self.end_time),
            "notes": self.notes,
        }


class WaitlistEntry(Base):
    __tablename__ = "waitlist"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    duration = Column(Integer, nullable=False)
    added_at = Column(DateTime, nullable=False, default=datetime.now)
    notified = Column(Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "customerName": self.customer_name,
            "customerPhone": self.customer_phone,
            "duration": self.duration,
            "addedAt": _iso(self.added_at),
            "notified": self.notified,
        }


class Prebooking(Base):
    __tablename__ = "prebookings"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'converted')", name="ck_prebooking_status"
        ),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    quad_id = Column(Integer, ForeignKey("quads.id"))
    quad_name = Column(String)
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    duration = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)
    scheduled_for = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    booking_id = Column(Integer, ForeignKey("bookings.id"))

    def to_dict(self):
        return {
            "id": self.id,
            "quadId": self.quad_id,
            "quadName": self.quad_name,
            "customerName": self.customer_name,
            "customerPhone": self.customer_phone,
            "duration": self.duration,
            "price": self.price,
            "scheduledFor": _iso(self.scheduled_for),
            "status": self.status,
            "createdAt": _iso(self.created_at),
            "bookingId": self.booking_id,
        }


class AppSetting(Base):
    """Singleton values such as the admin PIN."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
