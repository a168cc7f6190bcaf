import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field

from database import create_document, find_document, serialize_document
from schemas import User

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", 60))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

ADMIN_REQUIRED = "Access denied! Admin rights required."

router = APIRouter(prefix="/api/auth", tags=["auth"])
home_router = APIRouter(prefix="/api/home", tags=["home"])
admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: Optional[str] = None
    role: Literal["user", "admin"] = "user"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    token: str
    email: EmailStr
    name: Optional[str] = None
    role: str


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_token(email: str, role: str = "user", expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=JWT_EXPIRE_MINUTES))
    payload = {"sub": email, "role": role, "iat": int(now.timestamp()), "exp": expire}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def public_user(user: dict) -> dict:
    data = serialize_document(user)
    data.pop("password_hash", None)
    return data


def user_from_token(token: str) -> dict:
    """Resolve a bearer token to a stored user or fail with 401."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = find_document("user", {"email": email})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def get_current_user(token: str = Depends(oauth2_scheme)) -> dict:
    return user_from_token(token)


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=ADMIN_REQUIRED,
        )
    return current_user


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, token: Optional[str] = Depends(optional_oauth2_scheme)):
    email = str(payload.email)
    if find_document("user", {"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    # the first admin bootstraps itself; every later admin needs an admin's token
    if payload.role == "admin" and find_document("user", {"role": "admin"}):
        if not token:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ADMIN_REQUIRED)
        require_admin(user_from_token(token))
    user_doc = User(
        email=email,
        name=payload.name,
        password_hash=hash_password(payload.password),
        role=payload.role,
    )
    create_document("user", user_doc)
    logger.info(f"Registered user {email}", extra={"user": email})
    access_token = create_token(email, payload.role)
    return {"token": access_token, "email": email, "name": payload.name, "role": payload.role}


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest):
    email = str(payload.email)
    user = find_document("user", {"email": email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        logger.warning(f"Failed login for {email}", extra={"user": email})
        raise HTTPException(status_code=401, detail="Invalid credentials")
    role = user.get("role", "user")
    token = create_token(email, role)
    return {"token": token, "email": email, "name": user.get("name"), "role": role}


@router.get("/me")
def me(current_user: dict = Depends(get_current_user)):
    return public_user(current_user)


@home_router.get("/welcome")
def home_welcome(current_user: dict = Depends(get_current_user)):
    return {"message": "Welcome to the home page", "user": public_user(current_user)}


@admin_router.get("/welcome")
def admin_welcome(current_user: dict = Depends(require_admin)):
    return {"message": "Welcome to the admin page", "user": public_user(current_user)}
