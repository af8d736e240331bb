import calendar
from datetime import date

from sqlalchemy.orm import Session

from stockroom.errors import ValidationError
from stockroom.models.movement import MovementType, StockMovement
from stockroom.models.product import Product
from stockroom.services import product_service
from stockroom.services.alerts import StockLevel, classify_stock_level


def _check_year(year: int) -> None:
    if not 1 <= year <= 9999:
        raise ValidationError(f"Invalid year {year}")


def year_bounds(year: int) -> tuple[date, date]:
    _check_year(year)
    return date(year, 1, 1), date(year, 12, 31)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month {month}, expected 1-12")
    _check_year(year)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _value(m: StockMovement) -> float:
    return m.quantity * m.unit_price


def monthly_movement_report(db: Session, owner_id: str, year: int, month: int) -> dict:
    start, end = month_bounds(year, month)
    movements = product_service.list_movements(db, owner_id, start=start, end=end)

    daily = [{"day": d, "added": 0, "removed": 0} for d in range(1, end.day + 1)]
    added_qty = removed_qty = 0
    added_value = removed_value = 0.0
    # day -> product_id -> totals
    by_day: dict[int, dict[str, dict]] = {}

    for m in movements:
        slot = daily[m.date.day - 1]
        entry = by_day.setdefault(m.date.day, {}).setdefault(
            m.product_id,
            {
                "product_id": m.product_id,
                "name": m.product_name,
                "added": 0,
                "removed": 0,
                "added_value": 0.0,
                "removed_value": 0.0,
            },
        )
        if m.type == MovementType.ADD:
            slot["added"] += m.quantity
            added_qty += m.quantity
            added_value += _value(m)
            entry["added"] += m.quantity
            entry["added_value"] += _value(m)
        else:
            slot["removed"] += m.quantity
            removed_qty += m.quantity
            removed_value += _value(m)
            entry["removed"] += m.quantity
            entry["removed_value"] += _value(m)

    products_by_day = []
    for day in sorted(by_day):
        products = []
        for entry in by_day[day].values():
            entry["total"] = entry["added"] + entry["removed"]
            entry["net_value"] = round(entry["added_value"] - entry["removed_value"], 2)
            entry["added_value"] = round(entry["added_value"], 2)
            entry["removed_value"] = round(entry["removed_value"], 2)
            products.append(entry)
        products.sort(key=lambda e: e["total"], reverse=True)
        products_by_day.append({"date": date(year, month, day).isoformat(), "day": day, "products": products})

    return {
        "year": year,
        "month": month,
        "movement_count": len(movements),
        "summary": {
            "added_quantity": added_qty,
            "added_value": round(added_value, 2),
            "removed_quantity": removed_qty,
            "removed_value": round(removed_value, 2),
            "net_quantity": added_qty - removed_qty,
            "net_value": round(added_value - removed_value, 2),
        },
        "daily": daily,
        "products_by_day": products_by_day,
    }


def inventory_summary(db: Session, owner_id: str) -> dict:
    products = db.query(Product).filter(Product.owner_id == owner_id).all()
    levels = [classify_stock_level(p) for p in products]

    return {
        "total_products": len(products),
        "total_units_in_stock": sum(p.quantity for p in products),
        "total_inventory_value": round(sum(p.quantity * p.cost for p in products), 2),
        "out_of_stock_count": levels.count(StockLevel.OUT_OF_STOCK),
        "low_stock_count": levels.count(StockLevel.LOW_STOCK),
        "by_category": _group_by_category(products),
    }


def _group_by_category(products: list[Product]) -> list[dict]:
    cats: dict[str, dict] = {}
    for p in products:
        cat = p.category or "Uncategorized"
        if cat not in cats:
            cats[cat] = {"category": cat, "product_count": 0, "total_units": 0, "total_value": 0.0}
        cats[cat]["product_count"] += 1
        cats[cat]["total_units"] += p.quantity
        cats[cat]["total_value"] += p.quantity * p.cost
    for v in cats.values():
        v["total_value"] = round(v["total_value"], 2)
    return sorted(cats.values(), key=lambda c: c["category"])
