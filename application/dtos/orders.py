"""
Order DTOs (Pydantic v2) used at application boundaries.

Request models are intentionally permissive about presence; the order
service reports missing fields as ``OrderValidationException`` so the
message names the business field.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from core.response import OffsetPage
from domain.order.entity import ContactPoint, Order


class ContactPointIn(BaseModel):
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None


class PackageIn(BaseModel):
    size: Optional[str] = None
    weight: Optional[str] = None
    description: Optional[str] = None
    item_price: Optional[int] = Field(default=None, ge=0)


class FeesIn(BaseModel):
    courier_fee: int = Field(default=0, ge=0)
    carbon_fee: int = Field(default=0, ge=0)
    service_fee: int = Field(default=0, ge=0)


class PricingIn(BaseModel):
    """Amounts in minor units. Tax and total are always computed server-side."""
    base_fare: Optional[int] = None
    distance_surcharge: int = 0
    fees: FeesIn = Field(default_factory=FeesIn)
    subtotal: Optional[int] = None


class DistanceIn(BaseModel):
    km: Optional[float] = None
    duration_minutes: Optional[int] = None


class CreateOrderRequest(BaseModel):
    pickup: Optional[ContactPointIn] = None
    dropoff: Optional[ContactPointIn] = None
    package: Optional[PackageIn] = None
    pricing: Optional[PricingIn] = None
    distance: Optional[DistanceIn] = None
    coupon_code: Optional[str] = None


class AcceptOrderRequest(BaseModel):
    driver_id: str = Field(min_length=1)


class UpdateStatusRequest(BaseModel):
    driver_id: str = Field(min_length=1)
    status: str = Field(min_length=1)


class DriverNoteRequest(BaseModel):
    driver_id: str = Field(min_length=1)
    note: str = Field(max_length=1000)


class ContactPointOut(BaseModel):
    address: str
    lat: float
    lng: float
    contact_name: str
    contact_phone: str
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    actual_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, contact: ContactPoint) -> "ContactPointOut":
        return cls(
            address=contact.address,
            lat=contact.lat,
            lng=contact.lng,
            contact_name=contact.contact_name,
            contact_phone=contact.contact_phone,
            notes=contact.notes,
            scheduled_at=contact.scheduled_at,
            actual_at=contact.actual_at,
        )


class PricingOut(BaseModel):
    base_fare: int
    distance_surcharge: int
    courier_fee: int
    carbon_fee: int
    service_fee: int
    subtotal: int
    tax: int
    coupon_discount: int
    total: int
    currency: str


class CouponOut(BaseModel):
    code: str
    discount_type: str
    discount_value: Optional[int] = None


class TimelineOut(BaseModel):
    created_at: datetime
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class OrderResponse(BaseModel):
    order_id: str
    customer_id: str
    status: str
    payment_status: str
    driver_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    pickup: ContactPointOut
    dropoff: ContactPointOut
    package_size: str
    package_description: Optional[str] = None
    distance_km: float
    duration_minutes: int
    pricing: PricingOut
    coupon: Optional[CouponOut] = None
    timeline: TimelineOut
    driver_note: Optional[str] = None

    @classmethod
    def from_entity(cls, order: Order) -> "OrderResponse":
        p = order.pricing
        t = order.timeline
        return cls(
            order_id=order.order_id,
            customer_id=order.customer_id,
            status=order.status.value,
            payment_status=order.payment_status.value,
            driver_id=order.driver_id,
            expires_at=order.expires_at,
            pickup=ContactPointOut.from_entity(order.pickup),
            dropoff=ContactPointOut.from_entity(order.dropoff),
            package_size=order.package.size.value,
            package_description=order.package.description,
            distance_km=order.distance.km,
            duration_minutes=order.distance.duration_minutes,
            pricing=PricingOut(
                base_fare=p.base_fare,
                distance_surcharge=p.distance_surcharge,
                courier_fee=p.fees.courier_fee,
                carbon_fee=p.fees.carbon_fee,
                service_fee=p.fees.service_fee,
                subtotal=p.subtotal,
                tax=p.tax,
                coupon_discount=p.coupon_discount,
                total=p.total,
                currency=p.currency,
            ),
            coupon=CouponOut(
                code=order.coupon.code,
                discount_type=order.coupon.discount_type,
                discount_value=order.coupon.discount_value,
            ) if order.coupon else None,
            timeline=TimelineOut(
                created_at=t.created_at,
                assigned_at=t.assigned_at,
                picked_up_at=t.picked_up_at,
                delivered_at=t.delivered_at,
                cancelled_at=t.cancelled_at,
            ),
            driver_note=order.driver_note,
        )


class OrderListResponse(OffsetPage[OrderResponse]):
    pass


class ExpirySweepResponse(BaseModel):
    cancelled_count: int
    failed_count: int
