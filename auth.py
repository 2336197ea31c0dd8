from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Header
from jose import JWTError, jwt
from pydantic import BaseModel
from pymongo.database import Database

import config
from database import get_db
from errors import Forbidden, Unauthorized


class AuthUser(BaseModel):
    id: str
    name: str
    email: str
    is_admin: bool = False


def create_token(data: dict, expires_minutes: int = 60 * 24 * 30) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALG)


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Database = Depends(get_db),
) -> AuthUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Not authorized, no token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])
    except JWTError:
        raise Unauthorized("Not authorized, invalid token")

    user_id = payload.get("id")
    try:
        user_oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        raise Unauthorized("Not authorized, invalid token")
    user = db["user"].find_one({"_id": user_oid}, {"password_hash": 0})
    if not user:
        raise Unauthorized("User not found")

    return AuthUser(
        id=str(user["_id"]),
        name=user.get("name", "Anonymous"),
        email=user.get("email", ""),
        is_admin=bool(user.get("isAdmin", False)),
    )


def require_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    if not user.is_admin:
        raise Forbidden("Access denied: Admins only")
    return user
