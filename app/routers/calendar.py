from fastapi import APIRouter, Depends, HTTPException, Response

from app.core.security import get_current_user_id
from app.db import bills as bills_db
from app.db import recurring as recurring_db
from app.utils.calendar_feed import build_calendar

router = APIRouter()


@router.get("/ics")
def calendar_ics(user_id: str = Depends(get_current_user_id)):
    recurring = recurring_db.list_active(user_id)
    bills = bills_db.list_bills(user_id)
    if recurring is None or bills is None:
        raise HTTPException(status_code=500, detail="ics_failed")
    return Response(
        content=build_calendar(recurring, bills),
        media_type="text/calendar",
        headers={"Content-Disposition": 'attachment; filename="bills.ics"'},
    )
