# userauth/crud.py
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from . import models
from .core import security
from .core.security import verify_password
from .errors import DuplicateEmail, InvalidCredentials, UserNotFound

logger = logging.getLogger(__name__)


def get_users(db: Session):
    return db.query(models.User).order_by(models.User.created_at).all()


def get_user_by_email(db: Session, email: str):
    return db.query(models.User).filter(models.User.email == email).first()


def get_user_by_id(db: Session, user_id: str):
    return db.get(models.User, user_id)


def _commit(db: Session, email: str):
    # the unique index on users.email is the real guard; a prior lookup can race
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.info("Rejected duplicate email %s", email)
        raise DuplicateEmail() from e


def create_user(db: Session, fields: dict):
    db_user = models.User(**fields)
    db.add(db_user)
    _commit(db, db_user.email)
    db.refresh(db_user)
    logger.info("Created user %s", db_user.id)
    return db_user


def update_user(db: Session, user_id: str, patch: dict):
    db_user = get_user_by_id(db, user_id)
    if db_user is None:
        return None
    for field, value in patch.items():
        setattr(db_user, field, value)
    _commit(db, db_user.email)
    db.refresh(db_user)
    return db_user


def authenticate_user(db: Session, email: str, password: str):
    user = get_user_by_email(db, email=email)
    if not user:
        logger.info("Login attempt for unknown email %s", email)
        raise UserNotFound("User not found!")
    if not verify_password(password, user.password):
        logger.info("Wrong password for user %s", user.id)
        raise InvalidCredentials()
    return user


def create_google_user(db: Session, email: str, name: str = None):
    random_password = security.generate_random_password()
    return create_user(db, {
        "email": email,
        "name": name or email.split("@")[0],
        "password": security.get_password_hash(random_password),
        "role": "user",
    })
