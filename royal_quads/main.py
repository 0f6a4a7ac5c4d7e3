import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import analytics, back_office, services
from .config import settings
from .database import SessionLocal, init_db
from .errors import DomainError
from .notify import email_service, whatsapp_service
from .schemas import (
    BookingIn, CompleteIn, ConvertIn, DamageIn, FeedbackIn, LoginIn, MaintenanceIn, PackageIn,
    PinChangeIn, PinIn, PrebookingIn, PromotionIn, QuadIn, QuadStatusIn, QuadUpdate, RegisterIn,
    ResolveIn, ShiftEndIn, ShiftStartIn, StaffIn, StaffUpdate, ToggleIn, WaitlistIn,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


# ================== DATABASE ==================
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    db = SessionLocal()
    try:
        services.seed_defaults(db, settings.SEED_QUADS, settings.ADMIN_PIN)
    finally:
        db.close()
    logger.info("Royal Quads API ready")
    yield


# ================== APP ==================
app = FastAPI(title="Royal Quads", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def _dicts(records):
    return [r.to_dict() for r in records]


# ================== QUADS ==================
@app.get("/api/quads")
def list_quads(db=Depends(get_db)):
    return _dicts(services.list_quads(db))


@app.get("/api/quads/{quad_id}")
def get_quad(quad_id: int, db=Depends(get_db)):
    return services.read_quad(db, quad_id).to_dict()


@app.post("/api/quads")
def create_quad(body: QuadIn, db=Depends(get_db)):
    return services.create_quad(db, body.name, body.image_url, body.imei).to_dict()


@app.put("/api/quads/{quad_id}")
def update_quad(quad_id: int, body: QuadUpdate, db=Depends(get_db)):
    quad = services.update_quad(db, quad_id, body.name, body.status, body.image_url, body.imei)
    return {"success": True, **quad.to_dict()}


@app.put("/api/quads/{quad_id}/status")
def update_quad_status(quad_id: int, body: QuadStatusIn, db=Depends(get_db)):
    quad = services.update_quad_status(db, quad_id, body.status)
    return {"success": True, "status": quad.status}


# ================== BOOKINGS ==================
@app.post("/api/bookings")
def create_booking(body: BookingIn, background_tasks: BackgroundTasks, db=Depends(get_db)):
    booking = services.create_booking(
        db,
        quad_id=body.quad_id,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        duration=body.duration,
        price=body.price,
        original_price=body.original_price,
        promo_code=body.promo_code,
        user_id=body.user_id,
        group_size=body.group_size,
        id_photo_url=body.id_photo_url,
        deposit_amount=body.deposit_amount,
        operator_id=body.operator_id,
        waiver_signed=body.waiver_signed,
    )
    data = booking.to_dict()
    background_tasks.add_task(
        email_service.notify_owner,
        f"New booking {booking.receipt_id}",
        email_service.render_booking_email(data),
    )
    return {"id": booking.id, "receiptId": booking.receipt_id, "startTime": data["startTime"]}


@app.get("/api/bookings/active")
def active_bookings(db=Depends(get_db)):
    return _dicts(services.list_active_bookings(db))


@app.get("/api/bookings/history")
def booking_history(db=Depends(get_db)):
    return _dicts(services.list_booking_history(db))


@app.get("/api/bookings/export")
def export_bookings(db=Depends(get_db)):
    content = analytics.export_bookings_csv(services.list_all_bookings(db))
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="bookings.csv"'},
    )


@app.get("/api/bookings/receipt/{receipt_id}")
def booking_by_receipt(receipt_id: str, db=Depends(get_db)):
    return services.get_booking_by_receipt(db, receipt_id).to_dict()


@app.get("/api/bookings/{booking_id}")
def get_booking(booking_id: int, db=Depends(get_db)):
    return services.get_booking(db, booking_id).to_dict()


@app.get("/api/bookings/{booking_id}/clock")
def ride_clock(booking_id: int, db=Depends(get_db)):
    return services.ride_clock(db, booking_id)


@app.post("/api/bookings/{booking_id}/complete")
def complete_booking(booking_id: int, body: Optional[CompleteIn] = None, db=Depends(get_db)):
    overtime = body.overtime_minutes if body else 0
    booking = services.complete_booking(db, booking_id, overtime)
    return {
        "success": True,
        "endTime": booking.end_time.isoformat(),
        "overtimeMinutes": booking.overtime_minutes,
        "overtimeCharge": booking.overtime_charge,
    }


@app.post("/api/bookings/{booking_id}/feedback")
def submit_feedback(booking_id: int, body: FeedbackIn, db=Depends(get_db)):
    services.submit_feedback(db, booking_id, body.rating, body.feedback)
    return {"success": True}


@app.post("/api/bookings/{booking_id}/waiver")
def sign_waiver(booking_id: int, db=Depends(get_db)):
    booking = services.sign_waiver(db, booking_id)
    return {"success": True, "waiverSignedAt": booking.waiver_signed_at.isoformat()}


@app.post("/api/bookings/{booking_id}/deposit/return")
def return_deposit(booking_id: int, db=Depends(get_db)):
    services.return_deposit(db, booking_id)
    return {"success": True}


# ================== PRICING ==================
@app.get("/api/pricing")
def pricing():
    return services.list_pricing()


@app.get("/api/pricing/quote")
def quote(duration: int, promo_code: Optional[str] = Query(None, alias="promoCode"), db=Depends(get_db)):
    return services.quote_price(db, duration, promo_code)


# ================== SALES & ANALYTICS ==================
@app.get("/api/sales")
def sales(db=Depends(get_db)):
    return analytics.get_sales(db)


@app.get("/api/analytics/revenue")
def revenue_chart(db=Depends(get_db)):
    return analytics.revenue_chart(db)


@app.get("/api/analytics/peak-hours")
def peak_hours(db=Depends(get_db)):
    return analytics.peak_hours(db)


@app.get("/api/analytics/utilisation")
def quad_utilisation(db=Depends(get_db)):
    return analytics.quad_utilisation(db)


@app.get("/api/analytics/customers")
def customer_stats(db=Depends(get_db)):
    return analytics.customer_stats(db)


# ================== AUTH ==================
@app.post("/api/auth/register")
def register(body: RegisterIn, db=Depends(get_db)):
    return services.register(db, body.name, body.phone, body.password).to_dict()


@app.post("/api/auth/login")
def login(body: LoginIn, db=Depends(get_db)):
    return services.login(db, body.phone, body.password).to_dict()


@app.get("/api/users/{user_id}/history")
def user_history(user_id: int, db=Depends(get_db)):
    return _dicts(services.list_user_history(db, user_id))


@app.post("/api/admin/verify-pin")
def verify_admin_pin(body: PinIn, db=Depends(get_db)):
    services.verify_admin_pin(db, body.pin)
    return {"success": True}


@app.put("/api/admin/pin")
def change_admin_pin(body: PinChangeIn, db=Depends(get_db)):
    services.change_admin_pin(db, body.current_pin, body.new_pin)
    return {"success": True}


# ================== PROMOTIONS ==================
@app.get("/api/promotions")
def list_promotions(db=Depends(get_db)):
    return _dicts(services.list_promotions(db))


@app.post("/api/promotions")
def create_promotion(body: PromotionIn, db=Depends(get_db)):
    return services.create_promotion(db, body.code, body.discount_percentage).to_dict()


@app.get("/api/promotions/validate/{code}")
def validate_promotion(code: str, db=Depends(get_db)):
    return services.validate_promotion(db, code).to_dict()


@app.post("/api/promotions/{promotion_id}/toggle")
def toggle_promotion(promotion_id: int, body: ToggleIn, db=Depends(get_db)):
    services.toggle_promotion(db, promotion_id, body.is_active)
    return {"success": True}


@app.delete("/api/promotions/{promotion_id}")
def delete_promotion(promotion_id: int, db=Depends(get_db)):
    services.delete_promotion(db, promotion_id)
    return {"success": True}


# ================== PACKAGES ==================
@app.get("/api/packages")
def list_packages(active: bool = False, db=Depends(get_db)):
    return _dicts(back_office.list_packages(db, active_only=active))


@app.post("/api/packages")
def create_package(body: PackageIn, db=Depends(get_db)):
    return back_office.create_package(db, body.name, body.rides, body.price, body.description).to_dict()


@app.put("/api/packages/{package_id}")
def update_package(package_id: int, body: PackageIn, db=Depends(get_db)):
    package = back_office.update_package(db, package_id, body.name, body.rides, body.price, body.description)
    return package.to_dict()


@app.post("/api/packages/{package_id}/toggle")
def toggle_package(package_id: int, body: ToggleIn, db=Depends(get_db)):
    back_office.toggle_package(db, package_id, body.is_active)
    return {"success": True}


@app.delete("/api/packages/{package_id}")
def delete_package(package_id: int, db=Depends(get_db)):
    back_office.delete_package(db, package_id)
    return {"success": True}


# ================== MAINTENANCE ==================
@app.get("/api/maintenance")
def list_maintenance(quad_id: Optional[int] = None, db=Depends(get_db)):
    return _dicts(back_office.list_maintenance(db, quad_id))


@app.get("/api/maintenance/total")
def maintenance_total(quad_id: Optional[int] = None, db=Depends(get_db)):
    return {"total": back_office.total_maintenance_cost(db, quad_id)}


@app.post("/api/maintenance")
def create_maintenance(body: MaintenanceIn, db=Depends(get_db)):
    log = back_office.create_maintenance_log(
        db, body.quad_id, body.type, body.description, body.cost, body.operator_id
    )
    return log.to_dict()


@app.delete("/api/maintenance/{log_id}")
def delete_maintenance(log_id: int, db=Depends(get_db)):
    back_office.delete_maintenance_log(db, log_id)
    return {"success": True}


# ================== DAMAGE ==================
@app.get("/api/damage")
def list_damage(unresolved: bool = False, db=Depends(get_db)):
    return _dicts(back_office.list_damage_reports(db, unresolved_only=unresolved))


@app.post("/api/damage")
def create_damage(body: DamageIn, background_tasks: BackgroundTasks, db=Depends(get_db)):
    report = back_office.create_damage_report(
        db,
        quad_id=body.quad_id,
        description=body.description,
        severity=body.severity,
        booking_id=body.booking_id,
        photo_url=body.photo_url,
        repair_cost=body.repair_cost,
    )
    data = report.to_dict()
    if report.severity == "severe":
        background_tasks.add_task(
            email_service.notify_owner,
            f"Severe damage: {report.quad_name}",
            email_service.render_damage_email(data),
        )
    return data


@app.post("/api/damage/{report_id}/resolve")
def resolve_damage(report_id: int, body: Optional[ResolveIn] = None, db=Depends(get_db)):
    repair_cost = body.repair_cost if body else None
    return back_office.resolve_damage_report(db, report_id, repair_cost).to_dict()


# ================== STAFF ==================
@app.get("/api/staff")
def list_staff(active: bool = False, db=Depends(get_db)):
    return _dicts(back_office.list_staff(db, active_only=active))


@app.post("/api/staff")
def create_staff(body: StaffIn, db=Depends(get_db)):
    return back_office.create_staff(db, body.name, body.phone, body.pin, body.role).to_dict()


@app.put("/api/staff/{staff_id}")
def update_staff(staff_id: int, body: StaffUpdate, db=Depends(get_db)):
    return back_office.update_staff(db, staff_id, body.name, body.phone, body.role, body.pin).to_dict()


@app.delete("/api/staff/{staff_id}")
def deactivate_staff(staff_id: int, db=Depends(get_db)):
    back_office.deactivate_staff(db, staff_id)
    return {"success": True}


@app.post("/api/staff/login")
def staff_login(body: PinIn, db=Depends(get_db)):
    return back_office.staff_login(db, body.pin).to_dict()


# ================== SHIFTS ==================
@app.get("/api/shifts")
def list_shifts(open_only: bool = False, db=Depends(get_db)):
    return _dicts(back_office.list_shifts(db, open_only=open_only))


@app.post("/api/shifts")
def start_shift(body: ShiftStartIn, db=Depends(get_db)):
    return back_office.start_shift(db, body.staff_id).to_dict()


@app.post("/api/shifts/{shift_id}/end")
def end_shift(shift_id: int, body: Optional[ShiftEndIn] = None, db=Depends(get_db)):
    notes = body.notes if body else None
    return back_office.end_shift(db, shift_id, notes).to_dict()


# ================== WAITLIST ==================
@app.get("/api/waitlist")
def list_waitlist(db=Depends(get_db)):
    return _dicts(back_office.list_waitlist(db))


@app.post("/api/waitlist")
def add_to_waitlist(body: WaitlistIn, db=Depends(get_db)):
    entry = back_office.add_to_waitlist(db, body.customer_name, body.customer_phone, body.duration)
    return entry.to_dict()


@app.post("/api/waitlist/{entry_id}/notify")
def notify_waitlist(entry_id: int, db=Depends(get_db)):
    entry = back_office.get_waitlist_entry(db, entry_id)
    sent = whatsapp_service.send_whatsapp(
        entry.customer_phone,
        whatsapp_service.render_waitlist_message(entry.customer_name, entry.duration),
    )
    entry = back_office.mark_waitlist_notified(db, entry_id)
    return {**entry.to_dict(), "messageSent": sent}


@app.delete("/api/waitlist/{entry_id}")
def remove_from_waitlist(entry_id: int, db=Depends(get_db)):
    back_office.remove_from_waitlist(db, entry_id)
    return {"success": True}


# ================== PREBOOKINGS ==================
@app.get("/api/prebookings")
def list_prebookings(phone: Optional[str] = None, db=Depends(get_db)):
    return _dicts(back_office.list_prebookings(db, phone))


@app.post("/api/prebookings")
def create_prebooking(body: PrebookingIn, db=Depends(get_db)):
    prebooking = back_office.create_prebooking(
        db,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        duration=body.duration,
        price=body.price,
        scheduled_for=body.scheduled_for,
        quad_id=body.quad_id,
    )
    return prebooking.to_dict()


@app.post("/api/prebookings/{prebooking_id}/confirm")
def confirm_prebooking(prebooking_id: int, db=Depends(get_db)):
    return back_office.confirm_prebooking(db, prebooking_id).to_dict()


@app.post("/api/prebookings/{prebooking_id}/cancel")
def cancel_prebooking(prebooking_id: int, db=Depends(get_db)):
    return back_office.cancel_prebooking(db, prebooking_id).to_dict()


@app.post("/api/prebookings/{prebooking_id}/convert")
def convert_prebooking(prebooking_id: int, body: Optional[ConvertIn] = None, db=Depends(get_db)):
    quad_id = body.quad_id if body else None
    prebooking, booking = back_office.convert_prebooking(db, prebooking_id, quad_id)
    return {
        "prebooking": prebooking.to_dict(),
        "booking": {
            "id": booking.id,
            "receiptId": booking.receipt_id,
            "startTime": booking.start_time.isoformat(),
        },
    }
