"""Credential store over the ``users``, ``subscriptions`` and ``videos`` collections.

Documents keep the camelCase field names the API exposes. Every read that can
reach a client goes through ``PUBLIC_USER_PROJECTION`` so the password hash and
the stored refresh token never leave this module.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

logger = logging.getLogger(__name__)

PUBLIC_USER_PROJECTION = {"password": 0, "refreshToken": 0}
OWNER_PROJECTION = {"_id": 1, "fullName": 1, "userName": 1, "avatar": 1}


class DuplicateUserError(Exception):
    """userName or email already taken (unique index violation)."""


def to_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def channel_profile_pipeline(user_name: str, viewer_id: Optional[ObjectId]) -> list:
    if viewer_id is not None:
        is_subscribed = {"$cond": {"if": {"$in": [viewer_id, "$subscribers.subscriber"]}, "then": True, "else": False}}
    else:
        is_subscribed = {"$literal": False}
    return [
        {"$match": {"userName": user_name}},
        {"$lookup": {"from": "subscriptions", "localField": "_id", "foreignField": "channel", "as": "subscribers"}},
        {"$lookup": {"from": "subscriptions", "localField": "_id", "foreignField": "subscriber", "as": "subscribedTo"}},
        {"$addFields": {
            "subscribersCount": {"$size": "$subscribers"},
            "channelsSubscribedToCount": {"$size": "$subscribedTo"},
            "isSubscribed": is_subscribed,
        }},
        {"$project": {
            "fullName": 1,
            "userName": 1,
            "email": 1,
            "avatar": 1,
            "coverImage": 1,
            "subscribersCount": 1,
            "channelsSubscribedToCount": 1,
            "isSubscribed": 1,
        }},
    ]


def watch_history_pipeline(user_id: ObjectId) -> list:
    # $lookup on an array field does not keep the array order; the caller
    # re-sorts the joined videos against historyIds.
    return [
        {"$match": {"_id": user_id}},
        {"$addFields": {"historyIds": {"$ifNull": ["$watchHistory", []]}}},
        {"$lookup": {
            "from": "videos",
            "localField": "historyIds",
            "foreignField": "_id",
            "as": "videos",
            "pipeline": [
                {"$lookup": {
                    "from": "users",
                    "localField": "owner",
                    "foreignField": "_id",
                    "as": "owner",
                    "pipeline": [{"$project": OWNER_PROJECTION}],
                }},
                {"$addFields": {"owner": {"$first": "$owner"}}},
            ],
        }},
        {"$project": {"historyIds": 1, "videos": 1}},
    ]


def order_history(history_ids: list, videos: list) -> list:
    by_id = {v["_id"]: v for v in videos}
    return [by_id[vid] for vid in history_ids if vid in by_id]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MongoUserStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def find_by_login(self, email: Optional[str] = None, user_name: Optional[str] = None) -> Optional[dict]:
        """Full document (with password hash) matching either identifier."""
        clauses = []
        if email:
            clauses.append({"email": email})
        if user_name:
            clauses.append({"userName": user_name})
        if not clauses:
            return None
        return await self.db.users.find_one({"$or": clauses})

    async def exists(self, email: str, user_name: str) -> bool:
        doc = await self.db.users.find_one({"$or": [{"email": email}, {"userName": user_name}]}, {"_id": 1})
        return doc is not None

    async def email_taken_by_other(self, email: str, user_id: ObjectId) -> bool:
        doc = await self.db.users.find_one({"email": email, "_id": {"$ne": user_id}}, {"_id": 1})
        return doc is not None

    async def find_by_id(self, user_id: ObjectId, include_secrets: bool = False) -> Optional[dict]:
        projection = None if include_secrets else PUBLIC_USER_PROJECTION
        return await self.db.users.find_one({"_id": user_id}, projection)

    async def create(self, doc: dict) -> dict:
        now = _now()
        doc = {**doc, "refreshToken": None, "watchHistory": [], "createdAt": now, "updatedAt": now}
        try:
            result = await self.db.users.insert_one(doc)
        except DuplicateKeyError as e:
            raise DuplicateUserError(str(e)) from e
        return await self.find_by_id(result.inserted_id)

    async def set_refresh_token(self, user_id: ObjectId, token: str) -> None:
        # Only the token field changes, no other validation applies
        await self.db.users.update_one({"_id": user_id}, {"$set": {"refreshToken": token}})

    async def swap_refresh_token(self, user_id: ObjectId, expected: str, new: str) -> bool:
        """Compare-and-swap: write ``new`` only if ``expected`` is still stored."""
        result = await self.db.users.update_one(
            {"_id": user_id, "refreshToken": expected},
            {"$set": {"refreshToken": new}},
        )
        return result.modified_count == 1

    async def clear_refresh_token(self, user_id: ObjectId) -> None:
        await self.db.users.update_one({"_id": user_id}, {"$unset": {"refreshToken": 1}})

    async def set_password(self, user_id: ObjectId, password_hash: str) -> None:
        await self.db.users.update_one({"_id": user_id}, {"$set": {"password": password_hash, "updatedAt": _now()}})

    async def update_fields(self, user_id: ObjectId, fields: dict) -> Optional[dict]:
        try:
            return await self.db.users.find_one_and_update(
                {"_id": user_id},
                {"$set": {**fields, "updatedAt": _now()}},
                projection=PUBLIC_USER_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise DuplicateUserError(str(e)) from e

    async def channel_profile(self, user_name: str, viewer_id: Optional[ObjectId]) -> Optional[dict]:
        docs = await self.db.users.aggregate(channel_profile_pipeline(user_name, viewer_id)).to_list(length=1)
        return docs[0] if docs else None

    async def watch_history(self, user_id: ObjectId) -> List[dict]:
        docs = await self.db.users.aggregate(watch_history_pipeline(user_id)).to_list(length=1)
        if not docs:
            return []
        return order_history(docs[0].get("historyIds", []), docs[0].get("videos", []))
