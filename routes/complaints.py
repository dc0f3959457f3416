# routes/complaints.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status, Query

from auth.deps import require_roles
from auth.schemas import Actor, ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_TECHNICIAN, STAFF_ROLES
from Connections.db_mongo import get_db
from Schemas.complaints_schema import (
    ComplaintCreate, ComplaintBatchCreate, ComplaintUpdate, StatusChangeIn, NumberBlockIn,
    ComplaintOut, ComplaintWithSatellitesOut, ComplaintUpdateOut, ComplaintBatchOut, NumberBlockOut,
)
from services import complaint_service
from services.sequence_allocator import allocate_block

router = APIRouter()

staff_only = require_roles(*STAFF_ROLES)
any_staff = require_roles(ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_TECHNICIAN)
admin_only = require_roles(ROLE_ADMIN)


# ---------- Numbering ----------
@router.post("/numbers", response_model=NumberBlockOut, status_code=status.HTTP_201_CREATED)
def reserve_numbers(body: NumberBlockIn, db=Depends(get_db), actor: Actor = Depends(staff_only)):
    return {"complaint_nos": allocate_block(db, body.count)}


# ---------- Complaints ----------
@router.post("/", response_model=ComplaintWithSatellitesOut, status_code=status.HTTP_201_CREATED)
def create_complaint(body: ComplaintCreate, db=Depends(get_db), actor: Actor = Depends(staff_only)):
    return complaint_service.create_complaint(db, body.model_dump(exclude_unset=True), actor=actor)


@router.post("/batch", response_model=ComplaintBatchOut, status_code=status.HTTP_201_CREATED)
def create_batch(body: ComplaintBatchCreate, db=Depends(get_db), actor: Actor = Depends(staff_only)):
    payloads = [c.model_dump(exclude_unset=True) for c in body.complaints]
    return complaint_service.create_batch(db, payloads, actor=actor)


@router.get("/", response_model=List[ComplaintOut])
def list_complaints(
        db=Depends(get_db),
        actor: Actor = Depends(any_staff),
        status_q: Optional[str] = Query(None, alias="status"),
        technician_id: Optional[str] = None,
        start: Optional[str] = Query(None, description="YYYY-MM-DD[ HH:MM[:SS]]"),
        end: Optional[str] = Query(None, description="YYYY-MM-DD[ HH:MM[:SS]]"),
        skip: int = 0, limit: int = 50
):
    return complaint_service.list_complaints(
        db, status=status_q, technician_id=technician_id, start=start, end=end, skip=skip, limit=limit
    )


@router.get("/{complaint_id}", response_model=ComplaintWithSatellitesOut)
def get_complaint(complaint_id: str, db=Depends(get_db), actor: Actor = Depends(any_staff)):
    return complaint_service.get_complaint(db, complaint_id)


@router.put("/{complaint_id}", response_model=ComplaintUpdateOut)
def update_complaint(complaint_id: str, body: ComplaintUpdate, db=Depends(get_db),
                     actor: Actor = Depends(staff_only)):
    # apply-to-service rewrites the shared catalog price
    if body.apply_to_service and not actor.is_privileged:
        raise HTTPException(status_code=403, detail="Only admins can apply a price to the service")
    return complaint_service.update_complaint(db, complaint_id, body.model_dump(exclude_unset=True), actor=actor)


@router.patch("/{complaint_id}/status", response_model=ComplaintWithSatellitesOut)
def change_status(complaint_id: str, body: StatusChangeIn, db=Depends(get_db),
                  actor: Actor = Depends(any_staff)):
    return complaint_service.change_complaint_status(
        db, complaint_id, body.status, actor=actor, note=body.note or "", at=body.at
    )


@router.delete("/{complaint_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_complaint(complaint_id: str, db=Depends(get_db), actor: Actor = Depends(admin_only)):
    complaint_service.delete_complaint(db, complaint_id)
