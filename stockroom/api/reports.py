from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockroom.api.deps import get_current_user
from stockroom.database import get_db
from stockroom.models.user import User
from stockroom.services import report_service

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/monthly")
def monthly_report(
    year: int | None = Query(None),
    month: int | None = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Movements of one month; defaults to the current month."""
    today = date.today()
    return report_service.monthly_movement_report(
        db,
        user.id,
        year if year is not None else today.year,
        month if month is not None else today.month,
    )


@router.get("/inventory")
def inventory_report(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return report_service.inventory_summary(db, user.id)
