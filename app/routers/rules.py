import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from app.core.security import get_current_user_id
from app.db import rules as rules_db
from app.db import transactions as transactions_db
from app.db.mongo import serialize, to_object_id
from app.models.rule import RuleUpsert
from app.utils.rules import compute_update

logger = logging.getLogger(__name__)

router = APIRouter()


def _public(doc):
    data = serialize(doc)
    data.pop("user_id", None)
    return data


@router.get("")
def list_rules(user_id: str = Depends(get_current_user_id)):
    docs = rules_db.list_rules(user_id)
    if docs is None:
        raise HTTPException(status_code=500, detail="list_rules_failed")
    return {"rules": [_public(d) for d in docs]}


@router.post("")
def save_rule(body: RuleUpsert, user_id: str = Depends(get_current_user_id)):
    """Create a rule, or update it when `id` names an existing one."""
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="invalid_payload")

    fields = {
        "name": name,
        "order": body.order,
        "enabled": body.enabled,
        "when": {"field": body.when.field.value, "type": body.when.type.value, "value": body.when.value},
        "set": body.set.model_dump(exclude_none=True),
    }

    if body.id and to_object_id(body.id) is not None:
        doc = rules_db.update_rule(user_id, body.id, fields)
        if not doc:
            raise HTTPException(status_code=404, detail="rule_not_found")
        return {"rule": _public(doc)}

    doc = rules_db.create_rule(user_id, fields)
    if not doc:
        raise HTTPException(status_code=500, detail="create_rule_failed")
    return JSONResponse(status_code=status.HTTP_201_CREATED, content={"rule": _public(doc)})


@router.delete("/{rule_id}")
def delete_rule(rule_id: str, user_id: str = Depends(get_current_user_id)):
    if to_object_id(rule_id) is None:
        raise HTTPException(status_code=400, detail="bad_id")
    rules_db.delete_rule(user_id, rule_id)
    return {"success": True}


@router.post("/apply")
def apply_rules(user_id: str = Depends(get_current_user_id)):
    """Re-run every enabled rule over all of the user's transactions."""
    enabled = rules_db.list_rules(user_id, enabled_only=True) or []
    updates = {}
    for tx in transactions_db.find_transactions(user_id):
        update = compute_update(tx, enabled)
        if update:
            updates[tx["_id"]] = update

    updated = transactions_db.apply_updates(updates)
    logger.info(f"Applied {len(enabled)} rules for user {user_id}: {updated} transactions updated")
    return {"updated": updated}
