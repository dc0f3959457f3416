# Schemas/complaints_schema.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Any, Dict, Union
from datetime import datetime


# ---------- Requests ----------
class MissingPartIn(BaseModel):
    brand: Optional[str] = ""
    model: Optional[str] = ""
    part_name: Optional[str] = ""
    qty: Optional[int] = 1


class ComplaintMediaIn(BaseModel):
    # upload-provider results come in several shapes; the core resolves the URL
    model_config = ConfigDict(extra="allow")

    media_type: Optional[str] = None
    media_url: Optional[Any] = None
    provider_response: Optional[Dict[str, Any]] = None


class ComplaintCreate(BaseModel):
    complaint_no: Optional[str] = None
    customer_name: str
    phone: str
    phone2: Optional[str] = ""
    pin_code: Optional[str] = ""
    address: str
    service_id: Optional[str] = None
    service: Optional[str] = None
    technician_id: Optional[str] = None
    technician: Optional[str] = None
    problem_description: Optional[str] = ""
    remarks: Optional[str] = ""
    complaint_type: Optional[str] = None
    status: Optional[str] = None
    note: Optional[str] = ""
    opened_at: Optional[datetime] = None
    scheduled_at: Optional[datetime] = None
    technician_price_charged: Optional[Union[float, str]] = None
    service_base_price_charged: Optional[Union[float, str]] = None
    missing_parts: List[MissingPartIn] = []
    complaint_media: List[ComplaintMediaIn] = []


class ComplaintBatchCreate(BaseModel):
    complaints: List[ComplaintCreate]


class ComplaintUpdate(BaseModel):
    # anything outside the whitelist is dropped, not rejected
    model_config = ConfigDict(extra="ignore")

    customer_name: Optional[str] = None
    phone: Optional[str] = None
    phone2: Optional[str] = None
    pin_code: Optional[str] = None
    address: Optional[str] = None
    service_id: Optional[str] = None
    technician_id: Optional[str] = None
    problem_description: Optional[str] = None
    remarks: Optional[str] = None
    complaint_type: Optional[str] = None
    status: Optional[str] = None
    note: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    technician_price_charged: Optional[Union[float, str]] = None
    service_base_price_charged: Optional[Union[float, str]] = None
    missing_parts: Optional[List[MissingPartIn]] = None
    complaint_media: Optional[List[ComplaintMediaIn]] = None
    apply_to_service: bool = False


class StatusChangeIn(BaseModel):
    status: str
    note: Optional[str] = ""
    at: Optional[datetime] = Field(None, description="Backdated event time (admin corrections)")


class NumberBlockIn(BaseModel):
    count: int = Field(1, description="How many consecutive complaint numbers to reserve")


# ---------- Responses ----------
class StatusHistoryOut(BaseModel):
    status: str
    at: datetime
    by: Optional[str] = None
    note: str = ""


class ComplaintOut(BaseModel):
    id: str
    complaint_no: str
    customer_name: str
    phone: str
    phone2: str = ""
    address: str
    pin_code: str = ""
    service_id: Optional[str] = None
    technician_id: Optional[str] = None
    problem_description: str = ""
    remarks: str = ""
    complaint_type: Optional[str] = None
    status: str
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    time_to_close_ms: Optional[int] = None
    time_to_close_readable: Optional[str] = None
    status_history: List[StatusHistoryOut] = []
    technician_price_charged: Optional[float] = None
    service_base_price_charged: Optional[float] = None
    created_by: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    group_id: str = ""
    created_at: datetime
    updated_at: datetime


class MissingPartOut(BaseModel):
    id: str
    complaint_id: str
    brand: str = ""
    model: str = ""
    part_name: str = ""
    qty: int = 1


class ComplaintMediaOut(BaseModel):
    id: str
    complaint_id: str
    media_type: str
    media_url: str
    provider_response: Optional[Dict[str, Any]] = None


class ComplaintWithSatellitesOut(BaseModel):
    complaint: ComplaintOut
    missing_parts: List[MissingPartOut] = []
    media: List[ComplaintMediaOut] = []


class ComplaintUpdateOut(ComplaintWithSatellitesOut):
    applied_to_service: Optional[bool] = None


class ComplaintBatchOut(BaseModel):
    group_id: str
    created: List[ComplaintWithSatellitesOut]


class NumberBlockOut(BaseModel):
    complaint_nos: List[str]
