"""
Shipment Schemas
"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.shipment import ShipmentStatus


class ShipOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    carrier: Optional[str] = Field(None, max_length=100)
    estimated_delivery: Optional[date] = Field(None, alias="estimatedDelivery")
    notes: Optional[str] = Field(None, max_length=500)


class TrackingCreate(BaseModel):
    status: str = Field(..., min_length=1, max_length=50)
    location: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=500)


class TrackingResponse(BaseModel):
    id: int
    status: str
    location: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ShipmentResponse(BaseModel):
    id: int
    order_id: int
    tracking_number: str
    carrier: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_address: Optional[str] = None
    status: ShipmentStatus
    estimated_delivery: Optional[date] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    tracking: List[TrackingResponse] = []

    class Config:
        from_attributes = True
