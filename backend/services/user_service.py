from dataclasses import dataclass
from typing import Optional, Union
import logging
import secrets

import email_validator
from email_validator import EmailNotValidError, validate_email
from fastapi import HTTPException, UploadFile

from core.errors import BadRequest, Conflict, InternalFault, NotFound, Unauthorized
from core.security import (
    ExpiredToken,
    InvalidToken,
    create_access_token,
    create_refresh_token,
    get_password_hash,
    verify_password,
    verify_refresh_token,
)
from db.user_store import DuplicateUserError, MongoUserStore, to_object_id
from schemas.user_schema import TokenPair
from utils.media import MediaHost, UploadResult, stage_upload
from utils.timing import timeit

logger = logging.getLogger(__name__)

# Intranet, mDNS and test domains are valid account addresses
ACCEPTED_SPECIAL_USE_DOMAINS = ("local", "localhost", "internal", "test")
for _name in ACCEPTED_SPECIAL_USE_DOMAINS:
    if _name in email_validator.SPECIAL_USE_DOMAIN_NAMES:
        email_validator.SPECIAL_USE_DOMAIN_NAMES.remove(_name)

TOKEN_GENERATION_ERROR = "Something went wrong while generating refresh and access token"

REJECTION_MESSAGES = {
    "invalid": "Invalid refresh token",
    "expired": "Refresh token is expired",
    "mismatch": "Refresh token is expired or used",
    "unknown_user": "Invalid refresh token",
}


@dataclass(frozen=True)
class Rotated:
    tokens: TokenPair
    user_id: str


@dataclass(frozen=True)
class Rejected:
    reason: str

    @property
    def message(self) -> str:
        return REJECTION_MESSAGES.get(self.reason, "Invalid refresh token")


RotationResult = Union[Rotated, Rejected]


def normalize_identifier(value: Optional[str]) -> str:
    """userName and email are stored trimmed and lowercased"""
    return (value or "").strip().lower()

def ensure_valid_email(email: str) -> None:
    try:
        validate_email(email, check_deliverability=False, globally_deliverable=False)
    except EmailNotValidError:
        raise BadRequest("Invalid email address")

def _is_blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""

def _has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)

async def upload_asset(media: MediaHost, upload: Optional[UploadFile]) -> UploadResult:
    if not _has_file(upload):
        return UploadResult.failure()
    local_path = await stage_upload(upload)
    return await media.upload(local_path)

async def issue_tokens(store: MongoUserStore, user: dict) -> TokenPair:
    """Mint a fresh pair and make the refresh token the only valid one"""
    try:
        tokens = TokenPair(
            access_token=create_access_token(user),
            refresh_token=create_refresh_token(user["_id"]),
        )
        await store.set_refresh_token(user["_id"], tokens.refresh_token)
        return tokens
    except Exception as e:
        logger.error(f"Error generating tokens for {user.get('_id')}: {e}")
        raise InternalFault(TOKEN_GENERATION_ERROR)


@timeit("register_user")
async def register_user(
    store: MongoUserStore,
    media: MediaHost,
    full_name: Optional[str],
    user_name: Optional[str],
    email: Optional[str],
    password: Optional[str],
    avatar: Optional[UploadFile],
    cover_image: Optional[UploadFile] = None,
) -> dict:
    """Create a user; returns the stored record without password or refresh token"""
    try:
        if any(_is_blank(field) for field in (full_name, user_name, email, password)):
            raise BadRequest("All fields are required")

        user_name = normalize_identifier(user_name)
        email = normalize_identifier(email)
        ensure_valid_email(email)
        if await store.exists(email=email, user_name=user_name):
            raise Conflict("User with email or username already exists")

        if not _has_file(avatar):
            raise BadRequest("Avatar file is required")

        avatar_result = await upload_asset(media, avatar)
        if avatar_result.failed:
            raise InternalFault("Avatar upload failed")
        cover_result = await upload_asset(media, cover_image) if _has_file(cover_image) else UploadResult()

        try:
            created = await store.create({
                "fullName": full_name.strip(),
                "userName": user_name,
                "email": email,
                "password": get_password_hash(password),
                "avatar": avatar_result.url,
                "coverImage": cover_result.url or "",
            })
        except DuplicateUserError:
            raise Conflict("User with email or username already exists")
        if not created:
            raise InternalFault("Something went wrong while registering the user")
        logger.info(f"Registered user {user_name}")
        return created
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error registering user: {e}")
        raise InternalFault()


@timeit("login_user")
async def login_user(store: MongoUserStore, email: Optional[str], user_name: Optional[str], password: Optional[str]) -> dict:
    """Check credentials and open a session; returns the public user and both tokens"""
    try:
        if _is_blank(email) and _is_blank(user_name):
            raise BadRequest("Username or email is required")

        user = await store.find_by_login(email=normalize_identifier(email), user_name=normalize_identifier(user_name))
        if not user:
            raise NotFound("User does not exist")
        if not verify_password(password, user.get("password", "")):
            raise Unauthorized("Invalid user credentials")

        tokens = await issue_tokens(store, user)
        logged_in = await store.find_by_id(user["_id"])
        return {"user": logged_in, "tokens": tokens}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error logging in user: {e}")
        raise InternalFault()


async def logout_user(store: MongoUserStore, user_id) -> None:
    try:
        await store.clear_refresh_token(to_object_id(user_id))
    except Exception as e:
        logger.error(f"Error logging out user {user_id}: {e}")
        raise InternalFault()


async def rotate_refresh_token(store: MongoUserStore, presented: Optional[str]) -> RotationResult:
    """Exchange a refresh token for a new pair.

    The presented token must verify and equal the stored one; the new token
    is written with a compare-and-swap so two concurrent rotations of the
    same token cannot both succeed. Store errors propagate.
    """
    try:
        user_id = verify_refresh_token(presented)
    except ExpiredToken:
        return Rejected("expired")
    except InvalidToken:
        return Rejected("invalid")

    oid = to_object_id(user_id)
    user = await store.find_by_id(oid, include_secrets=True) if oid is not None else None
    if not user:
        return Rejected("unknown_user")

    stored = user.get("refreshToken") or ""
    if not secrets.compare_digest(stored.encode(), presented.encode()):
        return Rejected("mismatch")

    tokens = TokenPair(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user["_id"]),
    )
    if not await store.swap_refresh_token(oid, presented, tokens.refresh_token):
        return Rejected("mismatch")
    return Rotated(tokens=tokens, user_id=str(oid))


@timeit("refresh_access_token")
async def refresh_access_token(store: MongoUserStore, presented: Optional[str]) -> TokenPair:
    try:
        if _is_blank(presented):
            raise Unauthorized("Unauthorized request")
        result = await rotate_refresh_token(store, presented.strip())
        if isinstance(result, Rejected):
            logger.info(f"Refresh rejected: {result.reason}")
            raise Unauthorized(result.message)
        return result.tokens
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error refreshing access token: {e}")
        raise InternalFault(TOKEN_GENERATION_ERROR)


async def change_password(store: MongoUserStore, user_id, old_password: Optional[str], new_password: Optional[str]) -> None:
    try:
        if _is_blank(old_password) or _is_blank(new_password):
            raise BadRequest("Old and new password are required")
        oid = to_object_id(user_id)
        user = await store.find_by_id(oid, include_secrets=True)
        if not user:
            raise NotFound("User not found")
        if not verify_password(old_password, user.get("password", "")):
            raise BadRequest("Invalid old password")
        await store.set_password(oid, get_password_hash(new_password))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error changing password: {e}")
        raise InternalFault()


async def update_account_details(store: MongoUserStore, user_id, full_name: Optional[str], email: Optional[str]) -> dict:
    try:
        if _is_blank(full_name) or _is_blank(email):
            raise BadRequest("All fields are required")
        oid = to_object_id(user_id)
        email = normalize_identifier(email)
        ensure_valid_email(email)
        if await store.email_taken_by_other(email, oid):
            raise Conflict("Email already registered")
        try:
            updated = await store.update_fields(oid, {"fullName": full_name.strip(), "email": email})
        except DuplicateUserError:
            raise Conflict("Email already registered")
        if not updated:
            raise NotFound("User not found")
        return updated
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating account details: {e}")
        raise InternalFault()


async def update_user_image(store: MongoUserStore, media: MediaHost, user_id, field: str, upload: Optional[UploadFile]) -> dict:
    """Replace the avatar or coverImage URL with a freshly uploaded asset"""
    label = "Avatar" if field == "avatar" else "Cover image"
    try:
        if not _has_file(upload):
            raise BadRequest(f"{label} file is missing")
        result = await upload_asset(media, upload)
        if result.failed:
            raise InternalFault(f"Error while uploading {label.lower()}")
        updated = await store.update_fields(to_object_id(user_id), {field: result.url})
        if not updated:
            raise NotFound("User not found")
        return updated
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating {field}: {e}")
        raise InternalFault()
