from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from core.config import settings
from core.errors import Unauthorized
from core.security import InvalidToken, bearer_scheme, verify_access_token
from db.mongodb import get_mongo_db
from db.user_store import MongoUserStore, to_object_id
from utils.media import MediaHost, get_media_host


def get_user_store(db=Depends(get_mongo_db)) -> MongoUserStore:
    return MongoUserStore(db)

def get_media() -> MediaHost:
    return get_media_host()

def read_access_token(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """accessToken cookie first, then the Authorization bearer header"""
    return request.cookies.get(settings.ACCESS_COOKIE_NAME) or (bearer.credentials if bearer else None)

async def get_current_user(
    token: Optional[str] = Depends(read_access_token),
    store: MongoUserStore = Depends(get_user_store),
) -> dict:
    if not token:
        raise Unauthorized("Unauthorized request", headers={"WWW-Authenticate": "Bearer"})
    try:
        payload = verify_access_token(token)
    except InvalidToken:
        raise Unauthorized("Invalid access token", headers={"WWW-Authenticate": "Bearer"})

    user = await store.find_by_id(to_object_id(payload["_id"]))
    if not user:
        raise Unauthorized("Invalid access token", headers={"WWW-Authenticate": "Bearer"})
    return user

async def get_optional_viewer_id(token: Optional[str] = Depends(read_access_token)) -> Optional[str]:
    """Viewer identity for public routes; anonymous when the token is absent or invalid"""
    if not token:
        return None
    try:
        return verify_access_token(token)["_id"]
    except InvalidToken:
        return None
