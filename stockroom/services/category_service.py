import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockroom.errors import DependencyError, DuplicateNameError, NotFoundError, TransportError, ValidationError
from stockroom.models.category import Category
from stockroom.models.product import Product

logger = logging.getLogger(__name__)


def normalize_category(name: str) -> str:
    """'  cLEANING ' -> 'Cleaning'."""
    name = name.strip()
    return name[:1].upper() + name[1:].lower()


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Storage failure while trying to %s", action)
        raise TransportError(f"Could not {action}, please try again") from e


def list_categories(db: Session, owner_id: str) -> list[Category]:
    return db.query(Category).filter(Category.owner_id == owner_id).order_by(Category.name).all()


def get_category(db: Session, owner_id: str, category_id: str) -> Category | None:
    return db.query(Category).filter(Category.id == category_id, Category.owner_id == owner_id).first()


def create_category(db: Session, owner_id: str, name: str) -> Category:
    formatted = normalize_category(name or "")
    if not formatted:
        raise ValidationError("Category name is required")
    for existing in list_categories(db, owner_id):
        if existing.name.casefold() == formatted.casefold():
            raise DuplicateNameError(f"Category '{existing.name}' already exists")
    category = Category(owner_id=owner_id, name=formatted)
    db.add(category)
    _commit(db, "save category")
    db.refresh(category)
    return category


def count_products_in_category(db: Session, owner_id: str, name: str) -> int:
    key = name.casefold()
    products = db.query(Product.category).filter(Product.owner_id == owner_id).all()
    return sum(1 for (cat,) in products if cat.casefold() == key)


def delete_category(db: Session, owner_id: str, category_id: str) -> None:
    category = get_category(db, owner_id, category_id)
    if not category:
        raise NotFoundError(f"Category {category_id} not found")
    in_use = count_products_in_category(db, owner_id, category.name)
    if in_use:
        raise DependencyError(
            f"Category '{category.name}' is used by {in_use} product(s) and cannot be deleted"
        )
    name = category.name
    db.delete(category)
    _commit(db, "delete category")
    logger.info("Deleted category %s (%s)", category_id, name)
