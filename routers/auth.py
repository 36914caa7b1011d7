from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from typing import Annotated
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt

from config import JWT_SECRET_KEY, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from models.user import Identity
from logging_config import logger

# Tokens are issued by the identity provider; this service only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token", auto_error=True)

router = APIRouter()

def create_access_token(identity: Identity, expires_delta: timedelta = None):
    """Sign a token carrying the identity claims (used by tests and demo seeding)."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": identity.user_id,
        "name": identity.display_name,
        "email": identity.email,
        "email_verified": identity.email_verified,
        "exp": expire,
    }
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

# Helper to get current user from token
async def get_current_user(token: Annotated[str, Depends(oauth2_scheme)]) -> Identity:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    logger.debug(f"Decoding token: {token[:10]}...")

    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.error(f"JWT error: {str(e)}")
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        logger.warning("Subject missing from token")
        raise credentials_exception

    return Identity(
        user_id=user_id,
        display_name=payload.get("name") or user_id,
        email=payload.get("email"),
        email_verified=bool(payload.get("email_verified", False)),
    )

# Helper to require a verified email for anything that changes data
async def get_verified_user(current_user: Annotated[Identity, Depends(get_current_user)]) -> Identity:
    if not current_user.email_verified:
        logger.warning(f"Unverified user {current_user.user_id} attempted a write")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Please verify your email before making changes",
        )
    return current_user

@router.get(
    "/me",
    response_model=Identity,
    summary="Get the current identity",
    description="Returns the identity claims carried by the bearer token.",
)
async def read_current_user(current_user: Annotated[Identity, Depends(get_current_user)]):
    return current_user
