from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from api.dependencies import get_current_user, get_media, get_optional_viewer_id, get_user_store
from core.config import settings
from db.user_store import MongoUserStore
from schemas.user_schema import ChangePasswordRequest, LoginRequest, RefreshRequest, UpdateAccountRequest
from services.channel_service import get_channel_profile, get_watch_history
from services.user_service import (
    change_password,
    login_user,
    logout_user,
    refresh_access_token,
    register_user,
    update_account_details,
    update_user_image,
)
from utils.media import MediaHost
from utils.responses import api_response, clear_session_cookies, set_session_cookies

router = APIRouter(prefix=f"{settings.API_V1_STR}/users")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    fullName: Optional[str] = Form(None),
    userName: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    coverImage: Optional[UploadFile] = File(None),
    store: MongoUserStore = Depends(get_user_store),
    media: MediaHost = Depends(get_media),
):
    created = await register_user(store, media, fullName, userName, email, password, avatar, coverImage)
    return api_response(created, "User registered successfully", status_code=status.HTTP_201_CREATED)


@router.post("/login")
async def login(data: LoginRequest, store: MongoUserStore = Depends(get_user_store)):
    result = await login_user(store, data.email, data.userName, data.password)
    tokens = result["tokens"]
    response = api_response(
        {"user": result["user"], "accessToken": tokens.access_token, "refreshToken": tokens.refresh_token},
        "User logged in successfully",
    )
    return set_session_cookies(response, tokens.access_token, tokens.refresh_token)


@router.post("/logout")
async def logout(current_user: dict = Depends(get_current_user), store: MongoUserStore = Depends(get_user_store)):
    await logout_user(store, current_user["_id"])
    return clear_session_cookies(api_response({}, "User logged out successfully"))


@router.post("/refresh-token")
async def refresh_token(request: Request, data: Optional[RefreshRequest] = None, store: MongoUserStore = Depends(get_user_store)):
    presented = request.cookies.get(settings.REFRESH_COOKIE_NAME) or (data.refreshToken if data else None)
    tokens = await refresh_access_token(store, presented)
    response = api_response(tokens, "Access token refreshed")
    return set_session_cookies(response, tokens.access_token, tokens.refresh_token)


@router.post("/change-password")
async def change_current_password(
    data: ChangePasswordRequest,
    current_user: dict = Depends(get_current_user),
    store: MongoUserStore = Depends(get_user_store),
):
    await change_password(store, current_user["_id"], data.oldPassword, data.newPassword)
    return api_response({}, "Password changed successfully")


@router.get("/current-user")
async def current_user_endpoint(current_user: dict = Depends(get_current_user)):
    return api_response(current_user, "Current user fetched successfully")


@router.patch("/update-account")
async def update_account(
    data: UpdateAccountRequest,
    current_user: dict = Depends(get_current_user),
    store: MongoUserStore = Depends(get_user_store),
):
    updated = await update_account_details(store, current_user["_id"], data.fullName, data.email)
    return api_response(updated, "Account details updated successfully")


@router.patch("/avatar")
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    store: MongoUserStore = Depends(get_user_store),
    media: MediaHost = Depends(get_media),
):
    updated = await update_user_image(store, media, current_user["_id"], "avatar", avatar)
    return api_response(updated, "Avatar image updated successfully")


@router.patch("/cover-image")
async def update_cover_image(
    coverImage: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    store: MongoUserStore = Depends(get_user_store),
    media: MediaHost = Depends(get_media),
):
    updated = await update_user_image(store, media, current_user["_id"], "coverImage", coverImage)
    return api_response(updated, "Cover image updated successfully")


@router.get("/c/{username}")
async def channel_profile(
    username: str,
    viewer_id: Optional[str] = Depends(get_optional_viewer_id),
    store: MongoUserStore = Depends(get_user_store),
):
    channel = await get_channel_profile(store, username, viewer_id)
    return api_response(channel, "User channel fetched successfully")


@router.get("/history")
async def watch_history(current_user: dict = Depends(get_current_user), store: MongoUserStore = Depends(get_user_store)):
    history = await get_watch_history(store, current_user["_id"])
    return api_response(history, "Watch history fetched successfully")
