import base64
import binascii
import json
import logging
from datetime import datetime
from typing import AsyncIterator, Optional
from uuid import uuid4

from bson import ObjectId
from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from src.database.schemas.video import Video, VideoCreate, VideoDraft, VideoFilter, VideoPage, VideoUpdate
from src.utils.api_error import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
SORT_ORDER = [("created_at", DESCENDING), ("_id", DESCENDING)]


def utc_now() -> datetime:
    # Mongo keeps milliseconds, so cursors built from in-memory values must too
    now = datetime.utcnow()
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def _validation_messages(exc: PydanticValidationError) -> list:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return messages


def encode_cursor(video: Video) -> str:
    payload = json.dumps({"created_at": video.created_at.isoformat(), "id": video.id})
    return base64.urlsafe_b64encode(payload.encode()).decode()


def decode_cursor(cursor: str) -> dict:
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode()).decode())
        return {
            "created_at": datetime.fromisoformat(payload["created_at"]),
            "id": str(payload["id"]),
        }
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
        raise ValidationError(message="invalid cursor", errors=[str(e)]) from e


class VideoStore:
    """Video documents in Mongo and their lifecycle."""

    def __init__(self, collection, users_collection):
        self.collection = collection
        self.users = users_collection

    async def ensure_indexes(self):
        await self.collection.create_index(SORT_ORDER, name="created_at_id_desc")
        await self.collection.create_index(
            [("owner", ASCENDING), ("created_at", DESCENDING)],
            name="owner_created_at",
        )

    async def _owner_exists(self, owner: str) -> bool:
        candidates = [owner]
        if ObjectId.is_valid(owner):
            candidates.append(ObjectId(owner))
        user = await self.users.find_one({"_id": {"$in": candidates}}, {"_id": 1})
        return user is not None

    async def check_draft(self, fields: dict) -> VideoDraft:
        """Validates title, description and owner without writing anything."""
        try:
            draft = VideoDraft.model_validate(fields)
        except PydanticValidationError as e:
            raise ValidationError(errors=_validation_messages(e)) from e

        if not await self._owner_exists(draft.owner):
            raise ValidationError(errors=[f"owner: user {draft.owner} does not exist"])
        return draft

    async def create(self, fields: dict) -> Video:
        try:
            payload = VideoCreate.model_validate(fields)
        except PydanticValidationError as e:
            raise ValidationError(errors=_validation_messages(e)) from e

        if not await self._owner_exists(payload.owner):
            raise ValidationError(errors=[f"owner: user {payload.owner} does not exist"])

        now = utc_now()
        doc = {
            "_id": f"vid_{uuid4().hex}",
            **payload.model_dump(),
            "view_count": 0,
            "is_published": True,
            "created_at": now,
            "updated_at": now,
        }
        await self.collection.insert_one(doc)
        logger.info("Video created", extra={"video_id": doc["_id"]})
        return Video.model_validate(doc)

    async def get(self, video_id: str) -> Video:
        doc = await self.collection.find_one({"_id": video_id})
        if doc is None:
            raise NotFoundError(message=f"video {video_id} not found")
        return Video.model_validate(doc)

    async def _find_and_update(self, video_id: str, update: dict) -> Video:
        update.setdefault("$set", {})["updated_at"] = utc_now()
        doc = await self.collection.find_one_and_update(
            {"_id": video_id},
            update,
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFoundError(message=f"video {video_id} not found")
        return Video.model_validate(doc)

    async def record_view(self, video_id: str) -> Video:
        # $inc is applied server side, so concurrent viewers never lose a count
        return await self._find_and_update(video_id, {"$inc": {"view_count": 1}})

    async def set_published(self, video_id: str, published: bool) -> Video:
        video = await self._find_and_update(video_id, {"$set": {"is_published": bool(published)}})
        logger.info("Video publish state set to %s", video.is_published, extra={"video_id": video_id})
        return video

    async def update(self, video_id: str, fields: dict) -> Video:
        try:
            payload = VideoUpdate.model_validate(fields)
        except PydanticValidationError as e:
            raise ValidationError(errors=_validation_messages(e)) from e

        changes = payload.model_dump(exclude_unset=True)
        return await self._find_and_update(video_id, {"$set": changes})

    async def delete(self, video_id: str) -> Video:
        doc = await self.collection.find_one_and_delete({"_id": video_id})
        if doc is None:
            raise NotFoundError(message=f"video {video_id} not found")
        logger.info("Video deleted", extra={"video_id": video_id})
        return Video.model_validate(doc)

    def _base_query(self, video_filter: VideoFilter) -> dict:
        query = {}
        if video_filter.owner:
            query["owner"] = video_filter.owner
        if video_filter.published_only:
            query["is_published"] = True
        return query

    async def query_page(
        self,
        video_filter: Optional[VideoFilter] = None,
        cursor: Optional[str] = None,
        page_size: int = 20,
    ) -> VideoPage:
        """
        One page of videos, newest first (ties broken by id).

        The cursor marks the last item already seen, so pages stay stable
        when newer videos are inserted between calls.
        """
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(errors=[f"page_size must be between 1 and {MAX_PAGE_SIZE}"])

        video_filter = video_filter or VideoFilter()
        base_query = self._base_query(video_filter)
        query = dict(base_query)
        if cursor:
            after = decode_cursor(cursor)
            query["$or"] = [
                {"created_at": {"$lt": after["created_at"]}},
                {"created_at": after["created_at"], "_id": {"$lt": after["id"]}},
            ]

        docs = await self.collection.find(query).sort(SORT_ORDER).limit(page_size + 1).to_list(length=page_size + 1)
        items = [Video.model_validate(doc) for doc in docs[:page_size]]
        next_cursor = encode_cursor(items[-1]) if len(docs) > page_size else None
        total = await self.collection.count_documents(base_query)

        return VideoPage(items=items, next_cursor=next_cursor, total=total)

    async def iter_videos(
        self,
        video_filter: Optional[VideoFilter] = None,
        page_size: int = 20,
        cursor: Optional[str] = None,
    ) -> AsyncIterator[Video]:
        """Walks every matching video lazily, one page at a time."""
        while True:
            page = await self.query_page(video_filter, cursor=cursor, page_size=page_size)
            for video in page.items:
                yield video
            if page.next_cursor is None:
                return
            cursor = page.next_cursor
