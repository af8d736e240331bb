from datetime import date, datetime

from pydantic import BaseModel, Field

from stockroom.models.movement import MovementType
from stockroom.schemas.product import ProductOut


class AddMovementRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    unit_cost: float = Field(..., ge=0)
    date: date


class RemoveMovementRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    date: date


class MovementOut(BaseModel):
    id: str
    product_id: str
    product_name: str
    type: MovementType
    quantity: int
    cost: float
    unit_price: float
    date: date
    created_at: datetime

    model_config = {"from_attributes": True}


class MovementResult(BaseModel):
    product: ProductOut
    movement: MovementOut
