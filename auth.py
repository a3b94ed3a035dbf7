# auth.py
"""Password hashing, JWT bearer tokens and the current-caller dependency."""
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from dotenv import load_dotenv
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session, select

from db import get_session
from models import User, UserRole
from policy import Caller

load_dotenv()

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "1440"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

bearer_scheme = HTTPBearer(auto_error=False)


def _jwt_secret() -> str:
  secret = os.getenv("JWT_SECRET_KEY", "").strip()
  if not secret:
    raise HTTPException(
      status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
      detail="JWT secret key is not set",
    )
  return secret


def hash_password(password: str) -> str:
  salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
  return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
  return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def create_access_token(user: User, expires_minutes: Optional[int] = None) -> str:
  now = datetime.now(timezone.utc)
  payload = {
    "sub": str(user.id),
    "role": user.role.value,
    "client_id": user.client_id,
    "iat": now,
    "exp": now + timedelta(minutes=expires_minutes or JWT_EXPIRE_MINUTES),
  }
  return jwt.encode(payload, _jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
  try:
    return jwt.decode(token, _jwt_secret(), algorithms=[JWT_ALGORITHM])
  except jwt.ExpiredSignatureError:
    logger.info("Token rejected: expired")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
  except jwt.InvalidTokenError as e:
    logger.info("Token rejected: %s", e)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def authenticate_user(session: Session, username: str, password: str) -> Optional[User]:
  user = session.exec(select(User).where(User.username == username)).first()
  if not user or not verify_password(password, user.password_hash):
    return None
  return user


def caller_for(user: User) -> Caller:
  return Caller(id=user.id, username=user.username, role=user.role, client_id=user.client_id)


def get_current_caller(
  credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
  session: Session = Depends(get_session),
) -> Caller:
  if credentials is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

  payload = decode_access_token(credentials.credentials)
  try:
    user_id = int(payload.get("sub"))
  except (TypeError, ValueError):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

  # role and client link are read fresh so revoked access applies immediately
  user = session.get(User, user_id)
  if not user:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User no longer exists")
  return caller_for(user)


def ensure_admin_user(session: Session) -> Optional[User]:
  """Create the bootstrap admin from ADMIN_USERNAME/ADMIN_PASSWORD if absent."""
  username = os.getenv("ADMIN_USERNAME", "").strip()
  password = os.getenv("ADMIN_PASSWORD", "")
  if not username or not password:
    return None

  existing = session.exec(select(User).where(User.username == username)).first()
  if existing:
    return existing

  user = User(username=username, password_hash=hash_password(password), role=UserRole.admin)
  session.add(user)
  session.commit()
  session.refresh(user)
  logger.info("Created bootstrap admin user %s", username)
  return user
