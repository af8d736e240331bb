import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy.orm import Session

from stockroom.config import settings
from stockroom.errors import DuplicateNameError, ValidationError
from stockroom.models.user import PasswordResetCode, User
from stockroom.services import email_service

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_access_token(user_id: str, email: str) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError):
        return None


def _normalize_email(email: str) -> str:
    if not isinstance(email, str):
        raise ValidationError("A valid email is required")
    email = email.strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email is required")
    return email


def _check_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters")


def get_user_by_id(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def register_user(db: Session, email: str, password: str, display_name: str = "") -> User:
    email = _normalize_email(email)
    _check_password(password)
    if get_user_by_email(db, email):
        raise DuplicateNameError(f"An account for '{email}' already exists")
    user = User(
        email=email,
        display_name=display_name or email.split("@")[0],
        password_hash=hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User | None:
    user = db.query(User).filter(User.email == (email or "").strip().lower(), User.active == True).first()  # noqa: E712
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def set_password(db: Session, user: User, password: str) -> None:
    _check_password(password)
    user.password_hash = hash_password(password)
    db.commit()


# Password reset codes

def generate_reset_code() -> str:
    return str(secrets.randbelow(900000) + 100000)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def issue_reset_code(db: Session, email: str) -> None:
    """Store a fresh code for ``email`` (replacing any pending one) and mail it.

    Codes are issued whether or not an account exists for the address.
    """
    email = _normalize_email(email)
    code = generate_reset_code()
    entry = db.get(PasswordResetCode, email)
    if entry is None:
        entry = PasswordResetCode(email=email)
        db.add(entry)
    entry.code = code
    entry.expires_at = _utcnow() + timedelta(minutes=settings.RESET_CODE_TTL_MINUTES)
    db.commit()
    email_service.send_reset_code(email, code, settings.RESET_CODE_TTL_MINUTES)


def confirm_reset_code(db: Session, email: str, code: str, new_password: str) -> User:
    email = _normalize_email(email)
    entry = db.get(PasswordResetCode, email)
    if entry is None or not secrets.compare_digest(entry.code, (code or "").strip()):
        raise ValidationError("Invalid reset code")
    if entry.expires_at < _utcnow():
        db.delete(entry)
        db.commit()
        raise ValidationError("Reset code has expired")
    user = get_user_by_email(db, email)
    if not user:
        raise ValidationError("Invalid reset code")
    _check_password(new_password)
    user.password_hash = hash_password(new_password)
    db.delete(entry)
    db.commit()
    logger.info("Password reset for user %s", user.id)
    return user
