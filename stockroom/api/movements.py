from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockroom.api.deps import get_current_user, get_ledger
from stockroom.database import get_db
from stockroom.errors import ValidationError
from stockroom.models.user import User
from stockroom.schemas.movement import AddMovementRequest, MovementOut, MovementResult, RemoveMovementRequest
from stockroom.services import product_service
from stockroom.services.ledger_service import StockLedger
from stockroom.services.report_service import month_bounds, year_bounds

router = APIRouter(prefix="/movements", tags=["Movements"])


@router.post("/add", response_model=MovementResult, status_code=201)
def add_stock(data: AddMovementRequest, user: User = Depends(get_current_user), ledger: StockLedger = Depends(get_ledger)):
    product, movement = ledger.record_add_movement(user.id, data.product_id, data.quantity, data.unit_cost, data.date)
    return {"product": product, "movement": movement}


@router.post("/remove", response_model=MovementResult, status_code=201)
def remove_stock(data: RemoveMovementRequest, user: User = Depends(get_current_user), ledger: StockLedger = Depends(get_ledger)):
    product, movement = ledger.record_remove_movement(user.id, data.product_id, data.quantity, data.date)
    return {"product": product, "movement": movement}


@router.get("", response_model=list[MovementOut])
def list_movements(
    year: int | None = Query(None),
    month: int | None = Query(None),
    product_id: str | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    start: date | None = None
    end: date | None = None
    if month is not None:
        if year is None:
            raise ValidationError("year is required when filtering by month")
        start, end = month_bounds(year, month)
    elif year is not None:
        start, end = year_bounds(year)
    return product_service.list_movements(db, user.id, start=start, end=end, product_id=product_id)
