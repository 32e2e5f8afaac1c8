from typing import List, Optional
import logging

from fastapi import HTTPException

from core.errors import BadRequest, InternalFault, NotFound
from db.user_store import MongoUserStore, to_object_id
from utils.timing import timeit

logger = logging.getLogger(__name__)


@timeit("get_channel_profile")
async def get_channel_profile(store: MongoUserStore, username: Optional[str], viewer_id: Optional[str] = None) -> dict:
    """Public channel view with subscriber counts and the viewer's subscription flag"""
    try:
        if not username or not username.strip():
            raise BadRequest("Username is missing")
        viewer = to_object_id(viewer_id) if viewer_id else None
        channel = await store.channel_profile(username.strip().lower(), viewer)
        if not channel:
            raise NotFound("Channel does not exist")
        return channel
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching channel profile for {username}: {e}")
        raise InternalFault()


@timeit("get_watch_history")
async def get_watch_history(store: MongoUserStore, user_id) -> List[dict]:
    try:
        return await store.watch_history(to_object_id(user_id))
    except Exception as e:
        logger.error(f"Error fetching watch history for {user_id}: {e}")
        raise InternalFault()
