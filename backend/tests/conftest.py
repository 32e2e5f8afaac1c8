"""
Pytest configuration and fixtures for the backend tests.

MongoDB and Cloudinary are replaced with in-memory fakes through
``app.dependency_overrides``; the ASGI app is driven with httpx without
running the startup hooks.
"""
import asyncio
import copy
import os
import tempfile
from typing import AsyncGenerator, List, Optional

# Settings are read at import time
_TMP_ROOT = tempfile.mkdtemp(prefix="channel-accounts-tests-")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-signing-tokens")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_DIR", os.path.join(_TMP_ROOT, "logs"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("UPLOAD_TMP_DIR", os.path.join(_TMP_ROOT, "uploads"))
# Cloudinary is faked; its credentials stay unset

import pytest
import pytest_asyncio
from bson import ObjectId
from faker import Faker
from httpx import ASGITransport, AsyncClient

from api.dependencies import get_media, get_user_store
from core.security import get_password_hash
from db.user_store import DuplicateUserError, order_history
from main import app
from utils.media import UploadResult, remove_local_file

from helpers import DEFAULT_PASSWORD

fake = Faker()



def _public(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    doc = copy.deepcopy(doc)
    doc.pop("password", None)
    doc.pop("refreshToken", None)
    return doc


class InMemoryUserStore:
    """Test double with the same contract as MongoUserStore.

    Every method yields to the event loop once, like a real round trip, so
    concurrent callers interleave the way they would against MongoDB.
    """

    def __init__(self):
        self.users: dict = {}
        self.subscriptions: List[dict] = []
        self.videos: dict = {}

    async def _io(self):
        await asyncio.sleep(0)

    async def find_by_login(self, email=None, user_name=None):
        await self._io()
        for doc in self.users.values():
            if (email and doc["email"] == email) or (user_name and doc["userName"] == user_name):
                return copy.deepcopy(doc)
        return None

    async def exists(self, email, user_name):
        await self._io()
        return any(d["email"] == email or d["userName"] == user_name for d in self.users.values())

    async def email_taken_by_other(self, email, user_id):
        await self._io()
        return any(d["email"] == email and d["_id"] != user_id for d in self.users.values())

    async def find_by_id(self, user_id, include_secrets=False):
        await self._io()
        doc = self.users.get(user_id)
        if doc is None:
            return None
        return copy.deepcopy(doc) if include_secrets else _public(doc)

    async def create(self, doc):
        await self._io()
        if any(d["email"] == doc["email"] or d["userName"] == doc["userName"] for d in self.users.values()):
            raise DuplicateUserError("duplicate key")
        oid = ObjectId()
        self.users[oid] = {**doc, "_id": oid, "refreshToken": None, "watchHistory": []}
        return _public(self.users[oid])

    async def set_refresh_token(self, user_id, token):
        await self._io()
        self.users[user_id]["refreshToken"] = token

    async def swap_refresh_token(self, user_id, expected, new):
        await self._io()
        doc = self.users.get(user_id)
        if doc is None or doc.get("refreshToken") != expected:
            return False
        doc["refreshToken"] = new
        return True

    async def clear_refresh_token(self, user_id):
        await self._io()
        self.users[user_id].pop("refreshToken", None)

    async def set_password(self, user_id, password_hash):
        await self._io()
        self.users[user_id]["password"] = password_hash

    async def update_fields(self, user_id, fields):
        await self._io()
        doc = self.users.get(user_id)
        if doc is None:
            return None
        doc.update(fields)
        return _public(doc)

    async def channel_profile(self, user_name, viewer_id):
        await self._io()
        doc = next((d for d in self.users.values() if d["userName"] == user_name), None)
        if doc is None:
            return None
        subscribers = [s for s in self.subscriptions if s["channel"] == doc["_id"]]
        subscribed_to = [s for s in self.subscriptions if s["subscriber"] == doc["_id"]]
        return {
            "_id": doc["_id"],
            "fullName": doc["fullName"],
            "userName": doc["userName"],
            "email": doc["email"],
            "avatar": doc["avatar"],
            "coverImage": doc.get("coverImage", ""),
            "subscribersCount": len(subscribers),
            "channelsSubscribedToCount": len(subscribed_to),
            "isSubscribed": viewer_id is not None and viewer_id in [s["subscriber"] for s in subscribers],
        }

    async def watch_history(self, user_id):
        await self._io()
        doc = self.users.get(user_id)
        if doc is None:
            return []
        joined = []
        for video in self.videos.values():
            if video["_id"] in doc.get("watchHistory", []):
                video = copy.deepcopy(video)
                owner = self.users.get(video["owner"])
                video["owner"] = {k: owner[k] for k in ("_id", "fullName", "userName", "avatar")} if owner else None
                joined.append(video)
        return order_history(doc.get("watchHistory", []), joined)

    # seeding helpers

    def add_subscription(self, subscriber, channel):
        self.subscriptions.append({"_id": ObjectId(), "subscriber": subscriber, "channel": channel})

    def add_video(self, owner, title):
        oid = ObjectId()
        self.videos[oid] = {
            "_id": oid,
            "videoFile": f"https://media.test/{oid}.mp4",
            "thumbnail": f"https://media.test/{oid}.png",
            "title": title,
            "description": fake.sentence(),
            "duration": 120.0,
            "views": 0,
            "isPublished": True,
            "owner": owner,
        }
        return oid


class FakeMediaHost:
    """Stands in for Cloudinary; removes staged files exactly like MediaHost."""

    def __init__(self):
        self.fail = False
        self.uploaded: List[str] = []

    async def upload(self, local_path):
        try:
            if self.fail or not local_path:
                return UploadResult.failure()
            assert os.path.exists(local_path)
            self.uploaded.append(local_path)
            name = os.path.basename(local_path)
            return UploadResult(url=f"https://media.test/{name}", asset_id=name)
        finally:
            remove_local_file(local_path)


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def media() -> FakeMediaHost:
    return FakeMediaHost()


@pytest.fixture
def upload_dir() -> str:
    return os.environ["UPLOAD_TMP_DIR"]


@pytest_asyncio.fixture
async def async_client(store, media) -> AsyncGenerator[AsyncClient, None]:
    """Async client over the ASGI app with store and media host overridden."""
    app.dependency_overrides[get_user_store] = lambda: store
    app.dependency_overrides[get_media] = lambda: media

    async with AsyncClient(transport=ASGITransport(app=app), base_url="https://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(store):
    """Insert a user directly into the store and return its full document."""

    def _make(user_name: Optional[str] = None, email: Optional[str] = None, password: str = DEFAULT_PASSWORD) -> dict:
        user_name = (user_name or fake.unique.user_name()).lower()
        oid = ObjectId()
        store.users[oid] = {
            "_id": oid,
            "fullName": fake.name(),
            "userName": user_name,
            "email": (email or f"{user_name}@mail.com").lower(),
            "password": get_password_hash(password),
            "avatar": f"https://media.test/{user_name}.png",
            "coverImage": "",
            "refreshToken": None,
            "watchHistory": [],
        }
        return store.users[oid]

    return _make


@pytest.fixture
def register_form():
    user_name = fake.unique.user_name().lower()
    return {
        "fullName": fake.name(),
        "userName": user_name,
        "email": f"{user_name}@mail.com",
        "password": DEFAULT_PASSWORD,
    }


@pytest.fixture
def avatar_file():
    return {"avatar": ("avatar.png", b"\x89PNG fake avatar bytes", "image/png")}


