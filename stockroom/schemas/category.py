from pydantic import BaseModel


class CategoryCreate(BaseModel):
    name: str


class CategoryOut(BaseModel):
    id: str
    name: str

    model_config = {"from_attributes": True}
