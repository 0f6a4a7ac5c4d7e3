"""Request bodies. These only describe shape; business rules live in the services."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuadIn(CamelModel):
    name: Optional[str] = None
    image_url: Optional[str] = None
    imei: Optional[str] = None


class QuadUpdate(QuadIn):
    status: Optional[str] = None


class QuadStatusIn(CamelModel):
    status: Optional[str] = None


class BookingIn(CamelModel):
    quad_id: int
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    duration: int
    price: int
    original_price: Optional[int] = None
    promo_code: Optional[str] = None
    user_id: Optional[int] = None
    group_size: int = 1
    id_photo_url: Optional[str] = None
    deposit_amount: int = 0
    operator_id: Optional[int] = None
    waiver_signed: bool = False


class CompleteIn(CamelModel):
    overtime_minutes: int = 0


class FeedbackIn(CamelModel):
    rating: Optional[int] = None
    feedback: Optional[str] = None


class RegisterIn(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None


class LoginIn(CamelModel):
    phone: Optional[str] = None
    password: Optional[str] = None


class PinIn(CamelModel):
    pin: Optional[str] = None


class PinChangeIn(CamelModel):
    current_pin: Optional[str] = None
    new_pin: Optional[str] = None


class PromotionIn(CamelModel):
    code: Optional[str] = None
    discount_percentage: int


class ToggleIn(CamelModel):
    is_active: bool


class PackageIn(CamelModel):
    name: Optional[str] = None
    description: str = ""
    rides: int
    price: int


class MaintenanceIn(CamelModel):
    quad_id: int
    type: Optional[str] = None
    description: str = ""
    cost: int = 0
    operator_id: Optional[int] = None


class DamageIn(CamelModel):
    quad_id: int
    description: Optional[str] = None
    severity: Optional[str] = None
    booking_id: Optional[int] = None
    photo_url: Optional[str] = None
    repair_cost: int = 0


class ResolveIn(CamelModel):
    repair_cost: Optional[int] = None


class StaffIn(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    pin: Optional[str] = None
    role: str = "operator"


class StaffUpdate(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    role: str = "operator"
    pin: Optional[str] = None


class ShiftStartIn(CamelModel):
    staff_id: int


class ShiftEndIn(CamelModel):
    notes: Optional[str] = None


class WaitlistIn(CamelModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    duration: int


class PrebookingIn(CamelModel):
    quad_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    duration: int
    price: int
    scheduled_for: datetime


class ConvertIn(CamelModel):
    quad_id: Optional[int] = None
