"""Stock ledger: the only place where quantity and average cost change.

Each operation validates its input, locks and re-reads the product row,
applies the arithmetic, inserts the immutable movement and commits both in
one transaction. The product row is version-stamped, so a write based on a
stale read is rejected with ``ConcurrentUpdateError`` rather than silently
overwriting another session's update.
"""

import logging
import math
import re
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockroom.errors import (
    ConcurrentUpdateError,
    DuplicateBarcodeError,
    DuplicateNameError,
    InsufficientStockError,
    LedgerInvariantError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from stockroom.models.movement import MovementType, StockMovement
from stockroom.models.product import Product
from stockroom.services import events as ev
from stockroom.services import product_service
from stockroom.services.category_service import normalize_category

logger = logging.getLogger(__name__)

COST_TOLERANCE = 1e-9
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# --- Input validation ---

def _require_quantity(value, *, allow_zero: bool = False, field: str = "quantity") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'zero or ' if allow_zero else ''}positive")
    return value


def _require_cost(value, field: str = "unit_cost") -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number")
    value = float(value)
    if not math.isfinite(value) or value < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return value


def parse_movement_date(value) -> date:
    """Accept a date (datetimes are truncated) or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and ISO_DATE.match(value.strip()):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD")


# --- Arithmetic ---

def weighted_average_cost(old_qty: int, old_cost: float, qty: int, unit_cost: float) -> float:
    new_qty = old_qty + qty
    if new_qty <= 0:
        raise LedgerInvariantError(
            f"Add movement would leave quantity at {new_qty} (on hand {old_qty}, adding {qty})"
        )
    return (old_qty * old_cost + qty * unit_cost) / new_qty


def replay_movements(movements) -> tuple[int, float]:
    """Fold movements in recording order starting from an empty product."""
    quantity, cost = 0, 0.0
    for m in movements:
        if m.type == MovementType.ADD:
            cost = weighted_average_cost(quantity, cost, m.quantity, m.cost)
            quantity += m.quantity
        else:
            quantity -= m.quantity
    return quantity, cost


class StockLedger:
    def __init__(self, db: Session, events: ev.ProductEvents | None = None):
        self.db = db
        self.events = events if events is not None else ev.ProductEvents()

    def _load_for_update(self, owner_id: str, product_id: str) -> Product:
        product = (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.owner_id == owner_id)
            .with_for_update()
            .execution_options(populate_existing=True)
            .first()
        )
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def _commit(self, action: str, product_id: str) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning("Concurrent update rejected during %s on product %s", action, product_id)
            raise ConcurrentUpdateError(
                f"Product {product_id} was changed by another session, reload and try again"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Storage failure during %s on product %s", action, product_id)
            raise TransportError(f"Could not save {action}, please try again") from e

    def _publish(self, kind: str, product: Product, movement: StockMovement | None = None) -> None:
        self.events.publish(
            ev.ProductChanged(
                kind=kind,
                owner_id=product.owner_id,
                product_id=product.id,
                quantity=product.quantity,
                cost=product.cost,
                movement_id=movement.id if movement else "",
            )
        )

    def _apply_add(self, product: Product, quantity: int, unit_cost: float, on: date) -> StockMovement:
        old_qty, old_cost = product.quantity, product.cost
        new_cost = weighted_average_cost(old_qty, old_cost, quantity, unit_cost)
        product.quantity = old_qty + quantity
        product.cost = new_cost
        product.unit_price = unit_cost
        movement = StockMovement(
            owner_id=product.owner_id,
            product_id=product.id,
            product_name=product.name,
            type=MovementType.ADD,
            quantity=quantity,
            cost=unit_cost,
            unit_price=unit_cost,
            date=on,
        )
        self.db.add(movement)
        logger.info(
            "Add %d unit(s) to product %s: qty %d -> %d, avg cost %.4f -> %.4f",
            quantity, product.id, old_qty, product.quantity, old_cost, new_cost,
        )
        return movement

    def record_add_movement(self, owner_id: str, product_id: str, quantity: int, unit_cost: float, on):
        quantity = _require_quantity(quantity)
        unit_cost = _require_cost(unit_cost)
        on = parse_movement_date(on)

        try:
            product = self._load_for_update(owner_id, product_id)
            movement = self._apply_add(product, quantity, unit_cost, on)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Storage failure while recording add on product %s", product_id)
            raise TransportError("Could not record stock entry, please try again") from e
        except Exception:
            self.db.rollback()
            raise
        self._commit("stock entry", product_id)
        self.db.refresh(product)
        self._publish(ev.STOCK_ADDED, product, movement)
        return product, movement

    def record_remove_movement(self, owner_id: str, product_id: str, quantity: int, on):
        quantity = _require_quantity(quantity)
        on = parse_movement_date(on)

        try:
            product = self._load_for_update(owner_id, product_id)
            if quantity > product.quantity:
                logger.warning(
                    "Rejected removal of %d unit(s) from product %s holding %d",
                    quantity, product.id, product.quantity,
                )
                raise InsufficientStockError(product.name, quantity, product.quantity)
            old_qty = product.quantity
            product.quantity = old_qty - quantity
            movement = StockMovement(
                owner_id=owner_id,
                product_id=product.id,
                product_name=product.name,
                type=MovementType.REMOVE,
                quantity=quantity,
                cost=product.cost,
                unit_price=product.unit_price,
                date=on,
            )
            self.db.add(movement)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Storage failure while recording removal on product %s", product_id)
            raise TransportError("Could not record stock removal, please try again") from e
        except Exception:
            self.db.rollback()
            raise
        self._commit("stock removal", product_id)
        self.db.refresh(product)
        logger.info("Removed %d unit(s) from product %s: qty %d -> %d", quantity, product.id, old_qty, product.quantity)
        self._publish(ev.STOCK_REMOVED, product, movement)
        return product, movement

    def register_product(
        self,
        owner_id: str,
        name: str,
        category: str = "",
        initial_quantity: int = 0,
        initial_unit_cost: float = 0.0,
        min_stock: int = 0,
        image: str = "",
        barcode: str = "",
    ) -> Product:
        """Create a product; starting stock is booked as its first add movement."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Product name is required")
        initial_quantity = _require_quantity(initial_quantity, allow_zero=True, field="initial_quantity")
        initial_unit_cost = _require_cost(initial_unit_cost, field="initial_unit_cost")
        min_stock = _require_quantity(min_stock, allow_zero=True, field="min_stock")
        barcode = (barcode or "").strip()

        if product_service.name_taken(self.db, owner_id, name):
            raise DuplicateNameError(f"A product named '{name}' already exists")
        if barcode and product_service.find_product_by_barcode(self.db, owner_id, barcode):
            raise DuplicateBarcodeError(f"A product with barcode '{barcode}' already exists")

        product = Product(
            owner_id=owner_id,
            name=name,
            category=normalize_category(category or ""),
            quantity=0,
            cost=initial_unit_cost,
            unit_price=initial_unit_cost,
            min_stock=min_stock,
            image=image or "",
            barcode=barcode,
        )
        movement = None
        try:
            self.db.add(product)
            self.db.flush()
            if initial_quantity > 0:
                movement = self._apply_add(product, initial_quantity, initial_unit_cost, date.today())
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Storage failure while registering product %r", name)
            raise TransportError("Could not register product, please try again") from e
        self._commit("product registration", product.id)
        self.db.refresh(product)
        logger.info("Registered product %s (%s) with %d unit(s)", product.id, product.name, product.quantity)
        self._publish(ev.CREATED, product, movement)
        return product

    def reconcile(self, owner_id: str, product_id: str) -> dict:
        """Compare stored aggregates with a replay of the movement history."""
        product = product_service.require_product(self.db, owner_id, product_id)
        movements = product_service.get_product_movements(self.db, owner_id, product_id)
        replayed_qty, replayed_cost = replay_movements(movements)
        # Without any add the stored cost is only the registration seed
        has_adds = any(m.type == MovementType.ADD for m in movements)
        cost_ok = not has_adds or math.isclose(product.cost, replayed_cost, rel_tol=0, abs_tol=COST_TOLERANCE)
        return {
            "product_id": product.id,
            "quantity": product.quantity,
            "cost": product.cost,
            "replayed_quantity": replayed_qty,
            "replayed_cost": replayed_cost,
            "movement_count": len(movements),
            "consistent": product.quantity == replayed_qty and cost_ok,
        }
