from datetime import timedelta

import pytest

from royal_quads import back_office, services
from royal_quads.errors import AuthenticationError, Conflict, NotFound, ValidationError
from royal_quads.models import Booking, Quad

from conftest import T0, book


# ------------------ packages ------------------
def test_packages(db):
    family = back_office.create_package(db, "Family", rides=4, price=7000, description="4 x 15 min")
    back_office.create_package(db, "Solo", rides=2, price=3800)

    assert [p.name for p in back_office.list_packages(db)] == ["Solo", "Family"]

    back_office.toggle_package(db, family.id, False)
    assert [p.name for p in back_office.list_packages(db, active_only=True)] == ["Solo"]

    updated = back_office.update_package(db, family.id, "Family Pack", 5, 8000)
    assert (updated.name, updated.rides, updated.price) == ("Family Pack", 5, 8000)

    back_office.delete_package(db, family.id)
    with pytest.raises(NotFound):
        back_office.delete_package(db, family.id)


def test_package_validation(db):
    with pytest.raises(ValidationError):
        back_office.create_package(db, "Empty", rides=0, price=100)
    with pytest.raises(ValidationError):
        back_office.create_package(db, "", rides=1, price=100)


# ------------------ maintenance ------------------
def test_maintenance_log_copies_names(db, quad):
    operator = back_office.create_staff(db, "Juma", "0722000000", "4321")
    log = back_office.create_maintenance_log(
        db, quad.id, "fuel", "Topped up", cost=1500, operator_id=operator.id, now=T0
    )
    back_office.create_maintenance_log(db, quad.id, "service", cost=3000, now=T0 + timedelta(days=1))

    assert log.quad_name == "Quad 1"
    assert log.operator_name == "Juma"
    assert [entry.type for entry in back_office.list_maintenance(db, quad.id)] == ["service", "fuel"]
    assert back_office.total_maintenance_cost(db) == 4500

    back_office.delete_maintenance_log(db, log.id)
    assert back_office.total_maintenance_cost(db, quad.id) == 3000


def test_maintenance_validation(db, quad):
    with pytest.raises(ValidationError):
        back_office.create_maintenance_log(db, quad.id, "wash")
    with pytest.raises(NotFound):
        back_office.create_maintenance_log(db, 99, "fuel")
    with pytest.raises(NotFound):
        back_office.create_maintenance_log(db, quad.id, "fuel", operator_id=5)


def test_maintenance_log_leaves_quad_status_alone(db, quad):
    back_office.create_maintenance_log(db, quad.id, "repair", "Brake pads", cost=2500)
    assert db.get(Quad, quad.id).status == "available"


# ------------------ damage ------------------
def test_damage_report_lifecycle(db, quad):
    booking = book(db, quad.id, name="Baraka")
    report = back_office.create_damage_report(
        db, quad.id, "Cracked fender", "moderate", booking_id=booking.id, repair_cost=4000
    )
    assert report.customer_name == "Baraka"
    assert report.quad_name == "Quad 1"
    assert report.resolved is False

    back_office.create_damage_report(db, quad.id, "Scratch", "minor")
    assert len(back_office.list_damage_reports(db, unresolved_only=True)) == 2

    resolved = back_office.resolve_damage_report(db, report.id, repair_cost=3500)
    assert resolved.resolved is True
    assert resolved.repair_cost == 3500
    assert [r.description for r in back_office.list_damage_reports(db, unresolved_only=True)] == ["Scratch"]


def test_damage_report_validation(db, quad):
    with pytest.raises(ValidationError):
        back_office.create_damage_report(db, quad.id, "Dent", "catastrophic")
    with pytest.raises(ValidationError):
        back_office.create_damage_report(db, quad.id, "", "minor")
    with pytest.raises(NotFound):
        back_office.create_damage_report(db, quad.id, "Dent", "minor", booking_id=12)


# ------------------ staff & shifts ------------------
def test_staff_pin_login(db):
    juma = back_office.create_staff(db, "Juma", "0722000000", "4321", role="manager")
    assert "pin" not in juma.to_dict()
    assert back_office.staff_login(db, "4321").id == juma.id

    with pytest.raises(Conflict):
        back_office.create_staff(db, "Other", "0733000000", "4321")
    with pytest.raises(ValidationError):
        back_office.create_staff(db, "Other", "0733000000", "12")
    with pytest.raises(ValidationError):
        back_office.create_staff(db, "Other", "0733000000", "١٢٣٤")
    with pytest.raises(ValidationError):
        back_office.create_staff(db, "Other", "0733000000", "1111", role="owner")

    back_office.deactivate_staff(db, juma.id)
    with pytest.raises(AuthenticationError):
        back_office.staff_login(db, "4321")
    # pin is free again once the holder is inactive
    assert back_office.create_staff(db, "Wanjiru", "0744000000", "4321").is_active


def test_update_staff(db):
    juma = back_office.create_staff(db, "Juma", "0722000000", "4321")
    back_office.create_staff(db, "Wanjiru", "0744000000", "1111")

    with pytest.raises(Conflict):
        back_office.update_staff(db, juma.id, "Juma", "0722000000", "operator", pin="1111")

    updated = back_office.update_staff(db, juma.id, "Juma K", "0722000001", "manager", pin="2222")
    assert (updated.name, updated.role) == ("Juma K", "manager")
    assert back_office.staff_login(db, "2222").id == juma.id


def test_shifts(db):
    juma = back_office.create_staff(db, "Juma", "0722000000", "4321")
    shift = back_office.start_shift(db, juma.id, now=T0)
    assert shift.staff_name == "Juma"

    with pytest.raises(Conflict):
        back_office.start_shift(db, juma.id)
    assert [s.id for s in back_office.list_shifts(db, open_only=True)] == [shift.id]

    ended = back_office.end_shift(db, shift.id, notes=" fuel low on Quad 3 ", now=T0 + timedelta(hours=8))
    assert ended.end_time == T0 + timedelta(hours=8)
    assert ended.notes == "fuel low on Quad 3"
    assert back_office.list_shifts(db, open_only=True) == []

    with pytest.raises(Conflict):
        back_office.end_shift(db, shift.id)


def test_inactive_staff_cannot_start_shift(db):
    juma = back_office.create_staff(db, "Juma", "0722000000", "4321")
    back_office.deactivate_staff(db, juma.id)
    with pytest.raises(Conflict):
        back_office.start_shift(db, juma.id)
    with pytest.raises(NotFound):
        back_office.start_shift(db, 404)


# ------------------ waitlist ------------------
def test_waitlist_is_first_come_first_served(db):
    first = back_office.add_to_waitlist(db, "Amina", "0712345678", 15, now=T0)
    back_office.add_to_waitlist(db, "Baraka", "0798765432", 10, now=T0 + timedelta(minutes=2))

    assert [e.customer_name for e in back_office.list_waitlist(db)] == ["Amina", "Baraka"]

    assert back_office.mark_waitlist_notified(db, first.id).notified is True
    back_office.remove_from_waitlist(db, first.id)
    assert [e.customer_name for e in back_office.list_waitlist(db)] == ["Baraka"]

    with pytest.raises(NotFound):
        back_office.remove_from_waitlist(db, first.id)


# ------------------ prebookings ------------------
def test_prebooking_must_be_in_future(db):
    with pytest.raises(ValidationError):
        back_office.create_prebooking(db, "Amina", "0712345678", 15, 2200, T0 - timedelta(hours=1), now=T0)


def test_prebooking_confirm_and_cancel(db, quad):
    pb = back_office.create_prebooking(
        db, "Amina", "0712345678", 15, 2200, T0 + timedelta(days=1), quad_id=quad.id, now=T0
    )
    assert pb.status == "pending"
    assert pb.quad_name == "Quad 1"

    assert back_office.confirm_prebooking(db, pb.id).status == "confirmed"
    with pytest.raises(Conflict):
        back_office.confirm_prebooking(db, pb.id)

    assert back_office.cancel_prebooking(db, pb.id).status == "cancelled"
    with pytest.raises(Conflict):
        back_office.convert_prebooking(db, pb.id)


def test_convert_prebooking_creates_booking(db, quad):
    scheduled = T0 + timedelta(hours=2)
    pb = back_office.create_prebooking(db, "Amina", "0712345678", 15, 2200, scheduled, quad_id=quad.id, now=T0)

    prebooking, booking = back_office.convert_prebooking(db, pb.id, now=scheduled)

    assert prebooking.status == "converted"
    assert prebooking.booking_id == booking.id
    assert booking.is_prebooked is True
    assert booking.prebook_time == scheduled
    assert booking.price == 2200
    assert db.get(Quad, quad.id).status == "rented"

    with pytest.raises(Conflict):
        back_office.convert_prebooking(db, pb.id)


def test_convert_prebooking_to_busy_quad_keeps_it_pending(db, quad):
    other = services.create_quad(db, "Quad 2")
    pb = back_office.create_prebooking(db, "Amina", "0712345678", 15, 2200, T0 + timedelta(hours=1), now=T0)

    with pytest.raises(ValidationError):
        back_office.convert_prebooking(db, pb.id)

    book(db, quad.id)
    with pytest.raises(Conflict):
        back_office.convert_prebooking(db, pb.id, quad_id=quad.id)
    db.expire_all()
    assert back_office.list_prebookings(db)[0].status == "pending"

    _, booking = back_office.convert_prebooking(db, pb.id, quad_id=other.id)
    assert db.get(Booking, booking.id).quad_name == "Quad 2"


def test_list_prebookings_by_phone(db):
    back_office.create_prebooking(db, "Amina", "0712345678", 15, 2200, T0 + timedelta(hours=3), now=T0)
    back_office.create_prebooking(db, "Baraka", "0798765432", 10, 1800, T0 + timedelta(hours=1), now=T0)

    assert [p.customer_name for p in back_office.list_prebookings(db)] == ["Baraka", "Amina"]
    assert [p.customer_name for p in back_office.list_prebookings(db, "0712345678")] == ["Amina"]
