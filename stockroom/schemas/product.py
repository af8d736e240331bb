from datetime import datetime

from pydantic import BaseModel, Field, computed_field

from stockroom.services.alerts import classify_stock_level


class ProductCreate(BaseModel):
    name: str
    category: str = ""
    initial_quantity: int = Field(0, ge=0)
    initial_unit_cost: float = Field(0.0, ge=0)
    min_stock: int = Field(0, ge=0)
    image: str = ""
    barcode: str = ""


class ProductUpdate(BaseModel):
    """Non-ledger fields only; quantity and cost change through movements."""

    name: str | None = None
    category: str | None = None
    min_stock: int | None = Field(None, ge=0)
    image: str | None = None
    barcode: str | None = None


class BarcodeAssign(BaseModel):
    barcode: str


class ProductOut(BaseModel):
    id: str
    name: str
    category: str
    quantity: int
    cost: float
    unit_price: float
    min_stock: int
    image: str
    barcode: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def stock_level(self) -> str:
        return classify_stock_level(self).value


class StockAlertsOut(BaseModel):
    out_of_stock: list[ProductOut]
    low_stock: list[ProductOut]


class ReconcileOut(BaseModel):
    product_id: str
    quantity: int
    cost: float
    replayed_quantity: int
    replayed_cost: float
    movement_count: int
    consistent: bool


class DeleteResult(BaseModel):
    id: str
    movements_deleted: int = 0
