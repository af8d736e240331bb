from enum import Enum


class StockLevel(str, Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OK = "OK"


def classify_stock_level(product) -> StockLevel:
    """Classify any object exposing ``quantity`` and ``min_stock``."""
    if product.quantity == 0:
        return StockLevel.OUT_OF_STOCK
    if product.quantity <= product.min_stock:
        return StockLevel.LOW_STOCK
    return StockLevel.OK


def stock_alerts(products: list) -> dict[str, list]:
    out_of_stock = []
    low_stock = []
    for p in products:
        level = classify_stock_level(p)
        if level is StockLevel.OUT_OF_STOCK:
            out_of_stock.append(p)
        elif level is StockLevel.LOW_STOCK:
            low_stock.append(p)
    return {"out_of_stock": out_of_stock, "low_stock": low_stock}
