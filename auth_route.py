# auth_route.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from audit import record_audit
from auth import authenticate_user, create_access_token, get_current_caller, hash_password, verify_password
from db import get_session
from errors import InvalidRequestError, NotFoundError
from models import Client, ProfileRead, User, UserRead, UserRole
from policy import Caller, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
  username: str = Field(min_length=3)
  password: str = Field(min_length=8)
  email: Optional[str] = None


class CreateUserRequest(RegisterRequest):
  role: UserRole = UserRole.client
  client_id: Optional[int] = None


class LoginRequest(BaseModel):
  username: str
  password: str


class TokenResponse(BaseModel):
  token: str
  role: UserRole
  username: str
  client_id: Optional[int] = None


class ProfileUpdate(BaseModel):
  username: Optional[str] = Field(default=None, min_length=3)
  email: Optional[str] = None
  current_password: Optional[str] = None
  new_password: Optional[str] = Field(default=None, min_length=8)


def _create_user(session: Session, req: RegisterRequest, role: UserRole, client_id: Optional[int]) -> User:
  if session.exec(select(User).where(User.username == req.username)).first():
    raise InvalidRequestError("Username already taken")
  if client_id is not None and not session.get(Client, client_id):
    raise NotFoundError("client", client_id)

  user = User(
    username=req.username,
    email=req.email,
    password_hash=hash_password(req.password),
    role=role,
    client_id=client_id,
  )
  session.add(user)
  session.flush()
  return user


@router.post("/register", response_model=UserRead)
def register(req: RegisterRequest, session: Session = Depends(get_session)):
  # self sign-up is always an unlinked client; admins link it afterwards
  user = _create_user(session, req, UserRole.client, None)
  record_audit(session, "create", "user", user.id, user.id, {"role": user.role.value})
  session.commit()
  session.refresh(user)
  return user

@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, session: Session = Depends(get_session)):
  user = authenticate_user(session, req.username, req.password)
  if not user:
    logger.info("Failed login for %s", req.username)
    raise HTTPException(status_code=401, detail="Invalid credentials")
  return TokenResponse(token=create_access_token(user), role=user.role, username=user.username, client_id=user.client_id)

@router.get("/me", response_model=Caller)
def me(caller: Caller = Depends(get_current_caller)):
  return caller

@router.post("/users", response_model=UserRead)
def create_user(
  req: CreateUserRequest,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  require_admin(caller)
  user = _create_user(session, req, req.role, req.client_id)
  record_audit(session, "create", "user", user.id, caller.id, {"role": user.role.value, "client_id": user.client_id})
  session.commit()
  session.refresh(user)
  return user


def _own_user(session: Session, caller: Caller) -> User:
  user = session.get(User, caller.id)
  if not user:
    raise NotFoundError("user", caller.id)
  return user

@router.get("/profile", response_model=ProfileRead)
def get_profile(caller: Caller = Depends(get_current_caller), session: Session = Depends(get_session)):
  return _own_user(session, caller)

@router.put("/profile")
def update_profile(
  req: ProfileUpdate,
  caller: Caller = Depends(get_current_caller),
  session: Session = Depends(get_session),
):
  user = _own_user(session, caller)
  changes = {}

  if req.username and req.username != user.username:
    if session.exec(select(User).where(User.username == req.username)).first():
      raise InvalidRequestError("Username already taken")
    changes["username"] = [user.username, req.username]
    user.username = req.username

  if req.email and req.email != user.email:
    taken = session.exec(select(User).where(User.email == req.email, User.id != user.id)).first()
    if taken:
      raise InvalidRequestError("Email already in use")
    changes["email"] = [user.email, req.email]
    user.email = req.email

  if req.new_password:
    if not req.current_password or not verify_password(req.current_password, user.password_hash):
      raise InvalidRequestError("Current password is incorrect")
    user.password_hash = hash_password(req.new_password)
    changes["password"] = "changed"

  if changes:
    session.add(user)
    record_audit(session, "update", "user", user.id, user.id, changes)
    session.commit()
    session.refresh(user)
    logger.info("User %s updated profile fields %s", user.id, ", ".join(changes))
  return {"message": "Profile updated successfully", "user": UserRead.model_validate(user)}
