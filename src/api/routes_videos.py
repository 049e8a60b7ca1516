import logging
import os
import shutil
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Body, Depends, File, Form, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.core.config import settings
from src.database.collections import get_users_collection, get_videos_collection
from src.database.schemas.video import VideoFilter
from src.database.video_store import VideoStore
from src.utils.api_error import ApiError, UploadError, ValidationError
from src.utils.api_response import ApiResponse
from src.utils.asset_resolver import AssetResolver, ResolveStatus, remove_quietly, scoped_local_file

logger = logging.getLogger(__name__)
router = APIRouter()


class PublishRequest(BaseModel):
    is_published: bool


def get_video_store() -> VideoStore:
    return VideoStore(get_videos_collection(), get_users_collection())


def get_asset_resolver(request: Request) -> AssetResolver:
    resolver = getattr(request.app.state, "asset_resolver", None)
    if resolver is None:
        raise ApiError(503, "upload provider is not configured")
    return resolver


def respond(status_code: int, data, message: str = "success") -> JSONResponse:
    body = ApiResponse(status_code=status_code, data=data, message=message)
    return JSONResponse(status_code=body.status_code, content=body.model_dump())


def _copy_to(source, local_path: str):
    try:
        with open(local_path, "wb") as out:
            shutil.copyfileobj(source, out)
    except BaseException:
        remove_quietly(local_path)
        raise


async def save_to_temp(upload: Optional[UploadFile]) -> Optional[str]:
    """Copies an incoming file into the temp upload dir and returns its path."""
    if upload is None or not upload.filename:
        return None
    os.makedirs(settings.TEMP_UPLOAD_DIR, exist_ok=True)
    _, ext = os.path.splitext(upload.filename)
    local_path = os.path.join(settings.TEMP_UPLOAD_DIR, f"{uuid4().hex}{ext.lower()}")
    # large videos; keep the copy off the event loop
    await run_in_threadpool(_copy_to, upload.file, local_path)
    return local_path


async def _resolve_or_raise(resolver: AssetResolver, local_path: Optional[str], resource_type: str):
    result = await resolver.resolve(local_path, resource_type)
    if result.status is ResolveStatus.SKIPPED:
        raise ValidationError(errors=[f"{resource_type} file is required"])
    if result.status is ResolveStatus.FAILED:
        logger.warning("Rejecting publish, %s upload failed: %s", resource_type, result.error)
        raise UploadError(errors=[result.error])
    return result.asset


@router.post("")
async def publish_video(
    title: str = Form(""),
    description: str = Form(""),
    owner: str = Form(""),
    video: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    store: VideoStore = Depends(get_video_store),
    resolver: AssetResolver = Depends(get_asset_resolver),
):
    # nothing reaches the provider until the text fields and owner check out
    draft = await store.check_draft({"title": title, "description": description, "owner": owner})

    uploaded = []
    try:
        # both temp files go even when the first upload fails
        video_path = await save_to_temp(video)
        with scoped_local_file(video_path):
            thumbnail_path = await save_to_temp(thumbnail)
            with scoped_local_file(thumbnail_path):
                video_asset = await _resolve_or_raise(resolver, video_path, "video")
                uploaded.append(video_asset)
                thumbnail_asset = await _resolve_or_raise(resolver, thumbnail_path, "image")
                uploaded.append(thumbnail_asset)

        created = await store.create({
            "video_file_ref": video_asset.url,
            "thumbnail_ref": thumbnail_asset.url,
            "owner": draft.owner,
            "title": draft.title,
            "description": draft.description,
            "duration_seconds": video_asset.duration_seconds,
        })
    except Exception:
        for asset in uploaded:
            await resolver.discard(asset)
        raise

    return respond(201, created.model_dump(mode="json"), "video published")


@router.get("")
async def list_videos(
    owner: Optional[str] = None,
    published_only: bool = True,
    cursor: Optional[str] = None,
    page_size: int = Query(20),
    store: VideoStore = Depends(get_video_store),
):
    page = await store.query_page(
        VideoFilter(owner=owner, published_only=published_only),
        cursor=cursor,
        page_size=page_size,
    )
    return respond(200, page.model_dump(mode="json"), "videos fetched")


@router.get("/{video_id}")
async def get_video(video_id: str, store: VideoStore = Depends(get_video_store)):
    video = await store.get(video_id)
    return respond(200, video.model_dump(mode="json"), "video fetched")


@router.patch("/{video_id}")
async def update_video(
    video_id: str,
    fields: dict = Body(...),
    store: VideoStore = Depends(get_video_store),
):
    video = await store.update(video_id, fields)
    return respond(200, video.model_dump(mode="json"), "video updated")


@router.patch("/{video_id}/publish")
async def toggle_publish(
    video_id: str,
    payload: PublishRequest,
    store: VideoStore = Depends(get_video_store),
):
    video = await store.set_published(video_id, payload.is_published)
    return respond(200, video.model_dump(mode="json"), "publish status updated")


@router.post("/{video_id}/views")
async def record_view(video_id: str, store: VideoStore = Depends(get_video_store)):
    video = await store.record_view(video_id)
    return respond(200, video.model_dump(mode="json"), "view recorded")


@router.delete("/{video_id}")
async def delete_video(video_id: str, store: VideoStore = Depends(get_video_store)):
    video = await store.delete(video_id)
    return respond(200, {"id": video.id}, "video deleted")
