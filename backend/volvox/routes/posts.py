"""Posts API routes."""
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from volvox.config import settings
from volvox.database import get_db
from volvox.schemas.post import DeleteResponse, PostListResponse, PostResponse, ResequenceResponse
from volvox.services.blob_store import BlobStore, get_blob_store
from volvox.services.posts.errors import PostValidationError
from volvox.services.posts.models import ContentFile, ContentSelector, ContentUrl, Post, Upload
from volvox.services.posts.ordering import detect_inconsistency, position_of
from volvox.services.posts.service import PostService
from volvox.services.record_store import RecordStore

router = APIRouter(prefix="/api/posts", tags=["posts"])


def get_post_service(
    db: AsyncSession = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
) -> PostService:
    return PostService(RecordStore(db), blobs, settings.POSTS_COLLECTION)


@router.get("", response_model=PostListResponse)
async def list_posts(service: PostService = Depends(get_post_service)):
    """List posts in display order, flagging stored rank drift."""
    posts = await service.list_posts()
    return {
        "posts": [_to_response(p, i) for i, p in enumerate(posts)],
        "order_consistent": not detect_inconsistency(posts),
    }


@router.post("/resequence", response_model=ResequenceResponse)
async def resequence_posts(service: PostService = Depends(get_post_service)):
    """Rewrite stored ranks to match display order."""
    changes = await service.resequence()
    return {"changes": [{"id": c.post_id, "order": c.order} for c in changes]}


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(post_id: str, service: PostService = Depends(get_post_service)):
    """Get a single post by ID."""
    post = await service.get_post(post_id)
    return _to_response(post, position_of(await service.list_posts(), post_id))


@router.post("", response_model=PostResponse, status_code=201)
async def create_post(
    title: str = Form(""),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    content_type: Optional[str] = Form(None, alias="contentType"),
    content_file: Optional[UploadFile] = File(None, alias="contentFile"),
    external_url: Optional[str] = Form(None, alias="externalUrl"),
    target_position: Optional[int] = Form(None, alias="targetPosition"),
    service: PostService = Depends(get_post_service),
):
    """Create a post from the add form. Appends unless targetPosition is given."""
    content = await _content_selector(content_type, content_file, external_url)
    post = await service.submit_new_post(
        title,
        description,
        await _to_upload(image),
        content,
        target_position,
    )
    return _to_response(post)


@router.put("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: str,
    title: str = Form(""),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    content_type: Optional[str] = Form(None, alias="contentType"),
    content_file: Optional[UploadFile] = File(None, alias="contentFile"),
    external_url: Optional[str] = Form(None, alias="externalUrl"),
    target_position: Optional[int] = Form(None, alias="targetPosition"),
    service: PostService = Depends(get_post_service),
):
    """Update a post from the edit form. Omitted image/content are kept."""
    existing = await service.get_post(post_id)
    content = await _content_selector(content_type, content_file, external_url)
    post = await service.submit_post_edit(
        existing,
        title,
        description,
        await _to_upload(image),
        content,
        target_position,
    )
    return _to_response(post)


@router.delete("/{post_id}", response_model=DeleteResponse)
async def delete_post(post_id: str, service: PostService = Depends(get_post_service)):
    """Delete a post and its stored blobs."""
    post = await service.get_post(post_id)
    await service.delete_post(post)
    return {"deleted": True, "id": post_id}


async def _to_upload(file: Optional[UploadFile]) -> Optional[Upload]:
    """Browsers send an empty file part when nothing was picked."""
    if file is None or not file.filename:
        return None
    return Upload(filename=file.filename, data=await file.read(), content_type=file.content_type)


async def _content_selector(
    content_type: Optional[str],
    content_file: Optional[UploadFile],
    external_url: Optional[str],
) -> Optional[ContentSelector]:
    """Turn the form's content fields into a selector (None keeps current content)."""
    upload = await _to_upload(content_file)
    url = (external_url or "").strip() or None
    if upload is not None and url is not None:
        raise PostValidationError("Provide either a content file or an external URL, not both")
    if content_type is None:
        content_type = "url" if url else "file"

    if content_type == "file":
        if url is not None:
            raise PostValidationError("External URL given but contentType is 'file'")
        return ContentFile(upload=upload) if upload else None
    if content_type == "url":
        if upload is not None:
            raise PostValidationError("Content file given but contentType is 'url'")
        if url is None:
            raise PostValidationError("External URL is required when contentType is 'url'")
        return ContentUrl(url=url)
    raise PostValidationError(f"Invalid content type: {content_type!r}")


def _to_response(post: Post, position: Optional[int] = None) -> dict:
    """Convert a Post to its flat response dict."""
    return {
        "id": post.id,
        "title": post.title,
        "description": post.description,
        "image_url": post.image_url,
        "image_file_name": post.image_file_name,
        "file_url": post.file_url,
        "is_external_link": post.is_external_link,
        "content_file_name": post.content_file_name,
        "order": post.order,
        "position": position if position is not None else post.order,
        "created_at": post.created_at,
        "updated_at": post.updated_at,
    }
