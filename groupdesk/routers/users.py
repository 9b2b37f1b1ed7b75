"""User API routes: registration, login and the current identity."""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from groupdesk.database import get_db, transaction
from groupdesk.dependencies import get_current_user
from groupdesk.models.user import User
from groupdesk.schemas.user import CurrentUserOut, TokenOut, UserCreate, UserLogin, UserOut
from groupdesk.security import create_access_token, hash_password, verify_password
from groupdesk.services.exceptions import ConflictError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/register", response_model=TokenOut, status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, db: Session = Depends(get_db)):
    """Create an account and return an access token for it."""
    email = payload.email.strip().lower()
    existing = (
        db.query(User)
        .filter(or_(User.email == email, User.display_name == payload.display_name))
        .first()
    )
    if existing:
        raise ConflictError("Email or display name already in use")

    user = User(display_name=payload.display_name, email=email, password_hash=hash_password(payload.password))
    try:
        with transaction(db):
            db.add(user)
    except IntegrityError:
        raise ConflictError("Email or display name already in use")
    db.refresh(user)
    logger.info("Registered user %s (%s)", user.user_id, user.display_name)
    return TokenOut(access_token=create_access_token(user.user_id), user=UserOut.model_validate(user))


@router.post("/login", response_model=TokenOut)
def login(payload: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.strip().lower()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        logger.warning("Failed login for %s", payload.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return TokenOut(access_token=create_access_token(user.user_id), user=UserOut.model_validate(user))


@router.get("/me", response_model=CurrentUserOut)
def me(user: User = Depends(get_current_user)):
    """The identity behind the bearer token."""
    return CurrentUserOut(user=UserOut.model_validate(user))
