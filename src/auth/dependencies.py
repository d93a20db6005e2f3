from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from src.database import get_db
from src.auth.utils import verify_token
from src.auth.service import UserService
from src.auth.schemas import CallerContext

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    """Get current authenticated user"""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = verify_token(token, _credentials_exception())

    user = UserService.get_user_by_id(db, user_id=token_data["user_id"])
    if user is None:
        raise _credentials_exception()

    return user

def get_caller(current_user = Depends(get_current_user)) -> CallerContext:
    """Identity of the authenticated caller as an explicit context value"""
    return CallerContext.from_user(current_user)

def require_admin(caller: CallerContext = Depends(get_caller)) -> CallerContext:
    """Require admin (operator) access"""
    if not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions"
        )
    return caller
