from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional
import logging
import uuid

from src.models import User
from src.auth.schemas import UserCreate, UserUpdate, LoginRequest
from src.auth.utils import get_password_hash, verify_password

logger = logging.getLogger(__name__)

class UserService:
    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email.lower()).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def create_user(db: Session, user: UserCreate, is_admin: bool = False) -> User:
        """Create a new user profile"""
        db_user = User(
            id=str(uuid.uuid4()),
            email=user.email.lower(),
            full_name=user.full_name,
            phone=user.phone,
            password=get_password_hash(user.password),
            is_admin=is_admin
        )

        try:
            db.add(db_user)
            db.commit()
            db.refresh(db_user)
        except IntegrityError:
            db.rollback()
            raise ValueError("Email already registered")

        logger.info("Registered user %s", db_user.id)
        return db_user

    @staticmethod
    def authenticate_user(db: Session, login_data: LoginRequest) -> Optional[User]:
        """Authenticate user with email and password"""
        user = UserService.get_user_by_email(db, login_data.email)
        if not user:
            return None
        if not verify_password(login_data.password, user.password):
            return None
        return user

    @staticmethod
    def update_user(db: Session, user_id: str, user_update: UserUpdate) -> Optional[User]:
        """Update user profile"""
        db_user = UserService.get_user_by_id(db, user_id)
        if not db_user:
            return None

        update_data = user_update.model_dump(exclude_unset=True)

        if "password" in update_data:
            update_data["password"] = get_password_hash(update_data["password"])

        for field, value in update_data.items():
            setattr(db_user, field, value)

        db.commit()
        db.refresh(db_user)
        return db_user
