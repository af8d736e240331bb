import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from stockroom.api.deps import get_current_user
from stockroom.database import get_db
from stockroom.errors import EmailDeliveryError, ValidationError
from stockroom.models.user import User
from stockroom.schemas.user import (
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetConfirmRequest,
    UserOut,
)
from stockroom.services import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _set_token_cookie(response: Response, user: User) -> str:
    token = auth_service.create_access_token(user.id, user.email)
    response.set_cookie("token", token, httponly=True, samesite="lax", max_age=3600 * 72)
    return token


@router.post("/register", status_code=201)
def register(data: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    user = auth_service.register_user(db, data.email, data.password, data.display_name)
    token = _set_token_cookie(response, user)
    return {"token": token, "user": UserOut.model_validate(user)}


@router.post("/login")
def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, data.email, data.password)
    if not user:
        raise HTTPException(401, "Invalid email or password")
    token = _set_token_cookie(response, user)
    return {"token": token, "user": UserOut.model_validate(user)}


@router.post("/logout")
def logout(response: Response):
    response.delete_cookie("token")
    return {"ok": True}


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/change-password")
def change_own_password(data: ChangePasswordRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    auth_service.set_password(db, user, data.password)
    return {"ok": True}


@router.api_route("/password-reset/code", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def send_reset_code(request: Request, db: Session = Depends(get_db)):
    """Email a six digit reset code valid for a few minutes."""
    if request.method != "POST":
        return JSONResponse(status_code=405, content={"error": "Method not allowed"})
    try:
        body = await request.json()
    except ValueError:
        body = None
    email = body.get("email") if isinstance(body, dict) else None
    if not isinstance(email, str) or not email.strip():
        return JSONResponse(status_code=400, content={"error": "Email is required"})
    try:
        await run_in_threadpool(auth_service.issue_reset_code, db, email)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": e.message})
    except EmailDeliveryError:
        logger.exception("Reset code delivery failed")
        return JSONResponse(status_code=500, content={"error": "Failed to send email"})
    return {"success": True}


@router.post("/password-reset/confirm")
def confirm_reset(data: ResetConfirmRequest, db: Session = Depends(get_db)):
    auth_service.confirm_reset_code(db, data.email, data.code, data.new_password)
    return {"ok": True}
