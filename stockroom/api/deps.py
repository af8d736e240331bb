from fastapi import Cookie, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from stockroom.database import get_db
from stockroom.models.user import User
from stockroom.services import auth_service
from stockroom.services.events import ProductEvents
from stockroom.services.ledger_service import StockLedger


def get_current_user(
    request: Request,
    token: str | None = Cookie(default=None, alias="token"),
    db: Session = Depends(get_db),
) -> User:
    """Dependency: extract user from the JWT cookie or a Bearer header."""
    if not token:
        auth = request.headers.get("Authorization", "")
        if auth.lower().startswith("bearer "):
            token = auth[7:].strip()
    if not token:
        raise HTTPException(401, "Not authenticated")
    payload = auth_service.decode_token(token)
    if not payload:
        raise HTTPException(401, "Invalid or expired token")
    user = auth_service.get_user_by_id(db, payload["sub"])
    if not user or not user.active:
        raise HTTPException(401, "User not found or disabled")
    return user


def get_events(request: Request) -> ProductEvents:
    return request.app.state.events


def get_ledger(db: Session = Depends(get_db), events: ProductEvents = Depends(get_events)) -> StockLedger:
    return StockLedger(db, events)
