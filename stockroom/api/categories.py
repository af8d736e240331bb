from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockroom.api.deps import get_current_user
from stockroom.database import get_db
from stockroom.models.user import User
from stockroom.schemas.category import CategoryCreate, CategoryOut
from stockroom.services import category_service

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=list[CategoryOut])
def list_categories(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return category_service.list_categories(db, user.id)


@router.post("", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return category_service.create_category(db, user.id, data.name)


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    category_service.delete_category(db, user.id, category_id)
