import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status

from app.core.errors import DuplicateRecordError
from app.core.security import get_current_user_id
from app.db import rules as rules_db
from app.db import transactions as transactions_db
from app.db.mongo import to_object_id
from app.models.transaction import DuplicateResolve, TransactionIn, TransactionPublic
from app.utils import export, storage
from app.utils.dates import utcnow
from app.utils.rules import compute_update
from app.utils.transactions import (
    TransactionValidationError,
    duplicate_groups,
    parse_page,
    to_public,
    validate_transaction,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RECEIPT_MAX_BYTES = 5 * 1024 * 1024
RECEIPT_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "application/pdf": "pdf",
}


def _validated(body: TransactionIn, is_update: bool = False):
    try:
        return validate_transaction(body.model_dump(), is_update=is_update)
    except TransactionValidationError as e:
        raise HTTPException(status_code=400, detail=e.code)


def _tx_id(tx_id: str):
    if to_object_id(tx_id) is None:
        raise HTTPException(status_code=400, detail="invalid_transaction_id")
    return tx_id


@router.post("", response_model=TransactionPublic, response_model_exclude_none=True,
             status_code=status.HTTP_201_CREATED)
def create_transaction(body: TransactionIn, user_id: str = Depends(get_current_user_id)):
    fields = _validated(body)

    enabled_rules = rules_db.list_rules(user_id, enabled_only=True) or []
    update = compute_update(fields, enabled_rules)
    if update:
        fields.update(update)

    try:
        doc = transactions_db.insert_transaction(user_id, fields)
    except DuplicateRecordError:
        raise HTTPException(status_code=409, detail="duplicate_transaction")
    if not doc:
        raise HTTPException(status_code=500, detail="create_transaction_failed")
    return to_public(doc)


@router.get("")
def list_transactions(
    limit: Optional[str] = None,
    skip: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
):
    limit, skip = parse_page(limit, skip)
    docs = transactions_db.list_transactions(user_id, limit, skip)
    if docs is None:
        raise HTTPException(status_code=500, detail="list_transactions_failed")
    return [to_public(d) for d in docs]


@router.delete("/clear")
def clear_transactions(user_id: str = Depends(get_current_user_id)):
    deleted = transactions_db.clear_transactions(user_id)
    if deleted is None:
        raise HTTPException(status_code=500, detail="clear_transactions_failed")
    logger.info(f"Cleared {deleted} transactions for user {user_id}")
    return {"deleted_count": deleted}


def _export_rows(user_id, start_date, end_date, category, tx_type):
    query = transactions_db.build_export_query(start_date, end_date, category, tx_type)
    return export.prepare_for_export(transactions_db.find_transactions(user_id, query))


@router.get("/summary")
def transactions_summary(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    category: Optional[str] = None,
    type: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
):
    rows = _export_rows(user_id, start_date, end_date, category, type)
    return {"summary": export.summary_stats(rows)}


@router.get("/export/csv")
def export_csv(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    category: Optional[str] = None,
    type: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
):
    rows = _export_rows(user_id, start_date, end_date, category, type)
    filename = f"transactions_{utcnow().strftime('%Y%m%d')}.csv"
    return Response(
        content=export.generate_csv(rows),
        media_type=export.CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export/excel")
def export_excel(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    category: Optional[str] = None,
    type: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
):
    rows = _export_rows(user_id, start_date, end_date, category, type)
    filename = f"transactions_{utcnow().strftime('%Y%m%d')}.xlsx"
    return Response(
        content=export.generate_excel(rows),
        media_type=export.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/duplicates")
def list_duplicates(user_id: str = Depends(get_current_user_id)):
    return {"groups": duplicate_groups(transactions_db.find_transactions(user_id))}


@router.post("/duplicates/resolve")
def resolve_duplicates(body: DuplicateResolve, user_id: str = Depends(get_current_user_id)):
    if to_object_id(body.keep_id) is None:
        raise HTTPException(status_code=400, detail="bad_keep_id")
    ids = [i for i in body.delete_ids if i != body.keep_id]
    deleted = transactions_db.delete_transactions(user_id, ids)
    if deleted is None:
        raise HTTPException(status_code=500, detail="resolve_duplicates_failed")
    return {"deleted": deleted}


@router.put("/{tx_id}", response_model=TransactionPublic, response_model_exclude_none=True)
def update_transaction(tx_id: str, body: TransactionIn, user_id: str = Depends(get_current_user_id)):
    _tx_id(tx_id)
    fields = _validated(body, is_update=True)
    unset = ["note"] if fields.get("note") is None else []
    fields = {k: v for k, v in fields.items() if v is not None}

    try:
        doc = transactions_db.update_transaction(user_id, tx_id, fields, unset=unset)
    except DuplicateRecordError:
        raise HTTPException(status_code=409, detail="duplicate_transaction")
    if not doc:
        raise HTTPException(status_code=404, detail="transaction_not_found")
    return to_public(doc)


@router.delete("/{tx_id}")
def delete_transaction(tx_id: str, user_id: str = Depends(get_current_user_id)):
    _tx_id(tx_id)
    if not transactions_db.delete_transaction(user_id, tx_id):
        raise HTTPException(status_code=404, detail="transaction_not_found")
    return {"success": True}


@router.post("/{tx_id}/receipt")
def upload_receipt(
    tx_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
):
    _tx_id(tx_id)
    content_type = (file.content_type or "").lower()
    if content_type not in RECEIPT_TYPES:
        raise HTTPException(status_code=400, detail="unsupported_file_type")

    data = file.file.read()
    if len(data) > RECEIPT_MAX_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="file_too_large")

    existing = transactions_db.get_transaction(user_id, tx_id)
    if not existing:
        raise HTTPException(status_code=404, detail="transaction_not_found")

    key = f"receipts/{user_id}/{tx_id}-{uuid.uuid4().hex[:8]}.{RECEIPT_TYPES[content_type]}"
    url = storage.upload_bytes(key, data, content_type)
    if not url:
        raise HTTPException(status_code=500, detail="receipt_upload_failed")

    transactions_db.update_transaction(user_id, tx_id, {"receipt_url": url})
    storage.delete_object(storage.key_from_url(existing.get("receipt_url")))
    return {"receipt_url": url}


@router.delete("/{tx_id}/receipt")
def delete_receipt(tx_id: str, user_id: str = Depends(get_current_user_id)):
    _tx_id(tx_id)
    existing = transactions_db.get_transaction(user_id, tx_id)
    if not existing:
        raise HTTPException(status_code=404, detail="transaction_not_found")

    storage.delete_object(storage.key_from_url(existing.get("receipt_url")))
    transactions_db.update_transaction(user_id, tx_id, {}, unset=["receipt_url"])
    return {"success": True}
