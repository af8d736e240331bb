from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from stockroom.api.deps import get_current_user, get_events, get_ledger
from stockroom.database import get_db
from stockroom.models.user import User
from stockroom.schemas.movement import MovementOut
from stockroom.schemas.product import (
    BarcodeAssign,
    DeleteResult,
    ProductCreate,
    ProductOut,
    ProductUpdate,
    ReconcileOut,
    StockAlertsOut,
)
from stockroom.services import product_service
from stockroom.services.alerts import stock_alerts
from stockroom.services.events import ProductEvents
from stockroom.services.ledger_service import StockLedger

router = APIRouter(prefix="/products", tags=["Products"])


@router.post("", response_model=ProductOut, status_code=201)
def register_product(data: ProductCreate, user: User = Depends(get_current_user), ledger: StockLedger = Depends(get_ledger)):
    return ledger.register_product(
        user.id,
        name=data.name,
        category=data.category,
        initial_quantity=data.initial_quantity,
        initial_unit_cost=data.initial_unit_cost,
        min_stock=data.min_stock,
        image=data.image,
        barcode=data.barcode,
    )


@router.get("", response_model=list[ProductOut])
def list_products(category: str | None = None, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return product_service.list_products(db, user.id, category=category)


@router.get("/alerts", response_model=StockAlertsOut)
def alerts(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return stock_alerts(product_service.list_products(db, user.id))


@router.get("/barcode/{barcode}", response_model=ProductOut)
def lookup_barcode(barcode: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Lookup a product by a scanned barcode."""
    product = product_service.find_product_by_barcode(db, user.id, barcode)
    if not product:
        raise HTTPException(404, f"No product found with barcode: {barcode}")
    return product


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return product_service.require_product(db, user.id, product_id)


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    data: ProductUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    events: ProductEvents = Depends(get_events),
):
    return product_service.update_product(db, user.id, product_id, data, events)


@router.put("/{product_id}/barcode", response_model=ProductOut)
def assign_barcode(
    product_id: str,
    data: BarcodeAssign,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    events: ProductEvents = Depends(get_events),
):
    return product_service.save_barcode(db, user.id, product_id, data.barcode, events)


@router.delete("/{product_id}", response_model=DeleteResult)
def delete_product(
    product_id: str,
    purge_history: bool = False,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    events: ProductEvents = Depends(get_events),
):
    purged = product_service.delete_product(db, user.id, product_id, purge_history=purge_history, events=events)
    return DeleteResult(id=product_id, movements_deleted=purged)


@router.get("/{product_id}/movements", response_model=list[MovementOut])
def product_movements(product_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    product_service.require_product(db, user.id, product_id)
    return product_service.get_product_movements(db, user.id, product_id)


@router.get("/{product_id}/reconcile", response_model=ReconcileOut)
def reconcile(product_id: str, user: User = Depends(get_current_user), ledger: StockLedger = Depends(get_ledger)):
    """Replay the movement history and compare it with the stored totals."""
    return ledger.reconcile(user.id, product_id)
