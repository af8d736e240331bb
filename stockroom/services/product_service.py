import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockroom.errors import (
    ConcurrentUpdateError,
    DependencyError,
    DuplicateBarcodeError,
    DuplicateNameError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from stockroom.models.movement import StockMovement
from stockroom.models.product import Product
from stockroom.schemas.product import ProductUpdate
from stockroom.services import events as ev
from stockroom.services.category_service import normalize_category

logger = logging.getLogger(__name__)


def get_product(db: Session, owner_id: str, product_id: str) -> Product | None:
    return db.query(Product).filter(Product.id == product_id, Product.owner_id == owner_id).first()


def require_product(db: Session, owner_id: str, product_id: str) -> Product:
    product = get_product(db, owner_id, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(db: Session, owner_id: str, category: str | None = None) -> list[Product]:
    q = db.query(Product).filter(Product.owner_id == owner_id)
    if category:
        q = q.filter(Product.category == normalize_category(category))
    return q.order_by(Product.name).all()


def name_taken(db: Session, owner_id: str, name: str, exclude_id: str | None = None) -> bool:
    key = name.strip().casefold()
    rows = db.query(Product.id, Product.name).filter(Product.owner_id == owner_id).all()
    return any(n.casefold() == key and pid != exclude_id for pid, n in rows)


def find_product_by_barcode(db: Session, owner_id: str, barcode: str) -> Product | None:
    if not barcode:
        return None
    return (
        db.query(Product)
        .filter(Product.owner_id == owner_id, Product.barcode == barcode)
        .order_by(Product.created_at)
        .first()
    )


def _check_barcode_free(db: Session, owner_id: str, barcode: str, product_id: str) -> None:
    other = find_product_by_barcode(db, owner_id, barcode)
    if other and other.id != product_id:
        raise DuplicateBarcodeError(f"Barcode '{barcode}' is already assigned to '{other.name}'")


def _commit(db: Session, product_id: str) -> None:
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrentUpdateError(f"Product {product_id} was changed by another session") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Storage failure while saving product %s", product_id)
        raise TransportError("Could not save product, please try again") from e


def update_product(
    db: Session, owner_id: str, product_id: str, data: ProductUpdate, events: ev.ProductEvents | None = None
) -> Product:
    product = require_product(db, owner_id, product_id)
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)

    if "name" in update_data:
        name = update_data["name"].strip()
        if not name:
            raise ValidationError("Product name is required")
        if name_taken(db, owner_id, name, exclude_id=product.id):
            raise DuplicateNameError(f"A product named '{name}' already exists")
        update_data["name"] = name
    if "category" in update_data:
        update_data["category"] = normalize_category(update_data["category"])
    if "barcode" in update_data:
        update_data["barcode"] = update_data["barcode"].strip()
        if update_data["barcode"]:
            _check_barcode_free(db, owner_id, update_data["barcode"], product.id)

    for field, value in update_data.items():
        setattr(product, field, value)
    _commit(db, product.id)
    db.refresh(product)
    if events is not None:
        events.publish(ev.ProductChanged(
            kind=ev.UPDATED, owner_id=owner_id, product_id=product.id,
            quantity=product.quantity, cost=product.cost,
        ))
    return product


def save_barcode(
    db: Session, owner_id: str, product_id: str, barcode: str, events: ev.ProductEvents | None = None
) -> Product:
    barcode = (barcode or "").strip()
    if not barcode:
        raise ValidationError("Barcode is required")
    return update_product(db, owner_id, product_id, ProductUpdate(barcode=barcode), events)


def get_product_movements(db: Session, owner_id: str, product_id: str) -> list[StockMovement]:
    """Movements of one product in recording order."""
    return (
        db.query(StockMovement)
        .filter(StockMovement.owner_id == owner_id, StockMovement.product_id == product_id)
        .order_by(StockMovement.created_at, StockMovement.id)
        .all()
    )


def list_movements(
    db: Session,
    owner_id: str,
    start: date | None = None,
    end: date | None = None,
    product_id: str | None = None,
) -> list[StockMovement]:
    q = db.query(StockMovement).filter(StockMovement.owner_id == owner_id)
    if start:
        q = q.filter(StockMovement.date >= start)
    if end:
        q = q.filter(StockMovement.date <= end)
    if product_id:
        q = q.filter(StockMovement.product_id == product_id)
    return q.order_by(StockMovement.date, StockMovement.created_at).all()


def delete_product(
    db: Session,
    owner_id: str,
    product_id: str,
    purge_history: bool = False,
    events: ev.ProductEvents | None = None,
) -> int:
    """Delete a product. Returns the number of movements purged with it.

    A product with movement history is only deleted when ``purge_history``
    is set; the movements then go in the same transaction.
    """
    product = require_product(db, owner_id, product_id)
    name = product.name
    history = db.query(StockMovement).filter(StockMovement.product_id == product.id)
    count = history.count()
    if count and not purge_history:
        raise DependencyError(
            f"Product '{product.name}' has {count} recorded movement(s); "
            "delete with purge_history to remove them as well"
        )
    try:
        if count:
            history.delete(synchronize_session=False)
        db.delete(product)
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Storage failure while deleting product %s", product_id)
        raise TransportError("Could not delete product, please try again") from e
    _commit(db, product_id)
    logger.info("Deleted product %s (%s), purged %d movement(s)", product_id, name, count)
    if events is not None:
        events.publish(ev.ProductChanged(kind=ev.DELETED, owner_id=owner_id, product_id=product_id))
    return count
