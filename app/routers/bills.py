from fastapi import APIRouter, Depends, HTTPException, status

from app.core.security import get_current_user_id
from app.db import bills as bills_db
from app.db.mongo import iso, to_object_id
from app.models.bill import BillCreate, BillPublic, BillUpdate
from app.utils.bills import monthly_equivalent, summarize_bills
from app.utils.dates import to_naive_utc

router = APIRouter()


def _to_public(doc) -> BillPublic:
    return BillPublic(
        id=str(doc["_id"]),
        name=doc["name"],
        amount=doc.get("amount", 0),
        frequency=doc.get("frequency", "monthly"),
        category=doc.get("category", "Other"),
        next_due=iso(doc.get("next_due")),
        is_active=doc.get("is_active", True),
        color_name=doc.get("color_name", "blue"),
        monthly_equivalent=round(monthly_equivalent(doc), 2),
    )


def _storable(fields: dict) -> dict:
    if fields.get("frequency") is not None:
        fields["frequency"] = fields["frequency"].value
    if fields.get("next_due") is not None:
        fields["next_due"] = to_naive_utc(fields["next_due"])
    if fields.get("name") is not None:
        fields["name"] = fields["name"].strip()
    return fields


def _bill_id(bill_id: str) -> str:
    if to_object_id(bill_id) is None:
        raise HTTPException(status_code=400, detail="invalid_bill_id")
    return bill_id


@router.get("")
def list_bills(user_id: str = Depends(get_current_user_id)):
    docs = bills_db.list_bills(user_id)
    if docs is None:
        raise HTTPException(status_code=500, detail="list_bills_failed")
    return {"bills": [_to_public(d) for d in docs]}


@router.get("/summary")
def bills_summary(user_id: str = Depends(get_current_user_id)):
    docs = bills_db.list_bills(user_id)
    if docs is None:
        raise HTTPException(status_code=500, detail="list_bills_failed")
    summary = summarize_bills(docs)
    summary["due_soon"] = [_to_public(d) for d in summary["due_soon"]]
    return summary


@router.post("", response_model=BillPublic, status_code=status.HTTP_201_CREATED)
def create_bill(bill: BillCreate, user_id: str = Depends(get_current_user_id)):
    doc = bills_db.create_bill(user_id, _storable(bill.model_dump()))
    if not doc:
        raise HTTPException(status_code=500, detail="create_bill_failed")
    return _to_public(doc)


@router.put("/{bill_id}", response_model=BillPublic)
def update_bill(bill_id: str, bill_update: BillUpdate, user_id: str = Depends(get_current_user_id)):
    _bill_id(bill_id)
    # null fields are left unchanged
    mutable_fields = _storable(bill_update.model_dump(exclude_none=True))
    if not mutable_fields:
        raise HTTPException(status_code=400, detail="no_fields_to_update")

    updated = bills_db.update_bill(user_id, bill_id, mutable_fields)
    if not updated:
        raise HTTPException(status_code=404, detail="bill_not_found")
    return _to_public(updated)


@router.delete("/{bill_id}")
def delete_bill(bill_id: str, user_id: str = Depends(get_current_user_id)):
    _bill_id(bill_id)
    if not bills_db.delete_bill(user_id, bill_id):
        raise HTTPException(status_code=404, detail="bill_not_found")
    return {"success": True}
