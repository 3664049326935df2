"""Post mutations: add, edit, delete and reorder posts.

Each mutation is a short linear sequence of blob and record writes:

- add: upload image, upload content (or take the URL), create the record,
  then shift siblings if the post was not appended at the end.
- edit: replace image and content when new ones are given, then write the
  record's fields plus any sibling rank changes in one atomic batch.
- delete: delete the record, clean up its blobs, then close the rank gap.

Blob deletes are cleanup only. They are logged and swallowed so a missing
blob never leaves a post stuck.

Known gap: blob uploads and record writes are not one transaction. If any
step fails after an upload (a later upload or the record write), the
uploaded blobs stay behind. Their paths are logged at ERROR (see
``_orphans_logged``) but not compensated.
"""
import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager, contextmanager
from dataclasses import replace
from pathlib import PurePath
from typing import Optional

from pydantic import AnyUrl, TypeAdapter, ValidationError

from volvox.services.blob_store import BlobStore, POST_FILES_PREFIX, POST_IMAGES_PREFIX
from volvox.services.posts.errors import MutationInProgressError, PostValidationError
from volvox.services.posts.models import (
    Content,
    ContentFile,
    ContentSelector,
    ContentUrl,
    ExternalLink,
    FileContent,
    Post,
    Upload,
    content_fields,
    post_from_record,
    post_to_fields,
)
from volvox.services.posts.ordering import (
    OrderChange,
    check_position_type,
    detect_inconsistency,
    plan_insert,
    plan_removal,
    plan_resequence,
    position_of,
    sort_posts,
    validate_position,
)
from volvox.services.record_store import RecordNotFoundError, RecordStore

logger = logging.getLogger(__name__)

_url_adapter = TypeAdapter(AnyUrl)

# One submission at a time per process, like the page's "submitting" flag
_submit_lock = asyncio.Lock()


@asynccontextmanager
async def _submission():
    if _submit_lock.locked():
        raise MutationInProgressError("Another post submission is in progress")
    async with _submit_lock:
        yield


def storage_name(filename: str) -> str:
    """Unique blob file name that keeps the original base name readable."""
    base = PurePath(filename.replace("\\", "/")).name.strip() or "upload"
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{base}"


# ─── Validation ──────────────────────────────────────────────────

def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise PostValidationError(f"{field} is required")
    return text


def _require_upload(upload: Optional[Upload], what: str) -> Upload:
    if upload is None or not upload.filename:
        raise PostValidationError(f"{what} is required")
    return upload


def _validate_content(content: Optional[ContentSelector]) -> Optional[ContentSelector]:
    """Check a content selector. Returns the selector with its URL trimmed."""
    if content is None:
        return None
    if isinstance(content, ContentFile):
        _require_upload(content.upload, "Content file")
        return content
    if isinstance(content, ContentUrl):
        url = (content.url or "").strip()
        if not url:
            raise PostValidationError("External URL is required")
        try:
            _url_adapter.validate_python(url)
        except ValidationError:
            raise PostValidationError(
                f"Invalid external URL: {url!r} (e.g. https://example.com)"
            ) from None
        return ContentUrl(url=url)
    raise PostValidationError(f"Invalid content type: {type(content).__name__}")


def _content_changed(current: Optional[Content], selector: ContentSelector) -> bool:
    if isinstance(selector, ContentUrl):
        return not (isinstance(current, ExternalLink) and current.url == selector.url)
    return True


# ─── Service ─────────────────────────────────────────────────────

class PostService:
    """Composes the record store, blob store and ordering planners."""

    def __init__(self, records: RecordStore, blobs: BlobStore, collection: str = "posts"):
        self.records = records
        self.blobs = blobs
        self.collection = collection

    async def list_posts(self) -> list[Post]:
        """All posts in display order. Logs, but never repairs, rank drift."""
        # Raw ranks may be corrupt; ordering happens after normalization
        records = await self.records.list(self.collection)
        posts = sort_posts([post_from_record(r, self.blobs.path_for_url) for r in records])
        if detect_inconsistency(posts):
            logger.warning(
                f"Post order inconsistency in '{self.collection}' "
                f"({len(posts)} posts); run a resequence to repair"
            )
        return posts

    async def get_post(self, post_id: str) -> Post:
        record = await self.records.get(self.collection, post_id)
        return post_from_record(record, self.blobs.path_for_url)

    # ── Blob helpers ──

    async def _upload(self, prefix: str, upload: Upload) -> tuple[str, str]:
        """Upload under prefix; return (file name, public URL)."""
        name = storage_name(upload.filename)
        path = f"{prefix}{name}"
        await self.blobs.upload(path, upload.data, upload.content_type)
        return name, await self.blobs.get_url(path)

    async def _discard(self, prefix: str, name: Optional[str]) -> None:
        """Best-effort blob delete. Failures are logged, never raised."""
        if not name:
            return
        try:
            await self.blobs.delete(f"{prefix}{name}")
        except Exception as e:
            logger.warning(f"Blob cleanup failed for {prefix}{name}: {e}")

    async def _store_content(self, selector: ContentSelector) -> Content:
        if isinstance(selector, ContentFile):
            name, url = await self._upload(POST_FILES_PREFIX, selector.upload)
            return FileContent(url=url, file_name=name)
        return ExternalLink(url=selector.url)

    @contextmanager
    def _orphans_logged(self, action: str, uploaded: list[str]):
        """Log blobs uploaded so far if the rest of the mutation fails."""
        try:
            yield
        except Exception:
            if uploaded:
                logger.error(f"Post {action} failed; uploaded blobs left orphaned: {uploaded}")
            raise

    async def _write_changes(self, changes: list[OrderChange], own_id: Optional[str] = None,
                             own_fields: Optional[dict] = None) -> None:
        writes: dict[str, dict] = {c.post_id: {"order": c.order} for c in changes}
        if own_id is not None:
            writes.setdefault(own_id, {}).update(own_fields or {})
        if writes:
            await self.records.batch_update(self.collection, list(writes.items()))

    # ── Mutations ──

    async def submit_new_post(
        self,
        title: str,
        description: str,
        image: Optional[Upload],
        content: Optional[ContentSelector],
        target_position: Optional[int] = None,
    ) -> Post:
        """Create a post at target_position (default: appended at the end)."""
        title = _require_text(title, "Title")
        description = _require_text(description, "Description")
        image = _require_upload(image, "Image file")
        content = _validate_content(content)
        if content is None:
            raise PostValidationError("A content file or an external URL is required")
        if target_position is not None:
            check_position_type(target_position)

        async with _submission():
            posts = await self.list_posts()
            count = len(posts)
            position = count if target_position is None else validate_position(target_position, count)

            uploaded: list[str] = []
            with self._orphans_logged("add", uploaded):
                image_name, image_url = await self._upload(POST_IMAGES_PREFIX, image)
                uploaded.append(f"{POST_IMAGES_PREFIX}{image_name}")
                stored_content = await self._store_content(content)
                if isinstance(stored_content, FileContent):
                    uploaded.append(f"{POST_FILES_PREFIX}{stored_content.file_name}")

                post = Post(
                    id="",
                    title=title,
                    description=description,
                    image_url=image_url,
                    image_file_name=image_name,
                    content=stored_content,
                    order=count,
                )
                post.id = await self.records.create(self.collection, post_to_fields(post))
            logger.info(f"Added post {post.id} at position {position} of {count + 1}")

            changes = plan_insert(posts, None, post, position)
            await self._write_changes(changes)
            return await self.get_post(post.id)

    async def submit_post_edit(
        self,
        existing: Post,
        title: str,
        description: str,
        image: Optional[Upload] = None,
        content: Optional[ContentSelector] = None,
        target_position: Optional[int] = None,
    ) -> Post:
        """Update a post's fields, image, content and position.

        ``image=None`` keeps the current image and ``content=None`` keeps the
        current content. ``target_position=None`` keeps the current position.
        """
        title = _require_text(title, "Title")
        description = _require_text(description, "Description")
        if image is not None:
            _require_upload(image, "Image file")
        content = _validate_content(content)
        if target_position is not None:
            check_position_type(target_position)

        async with _submission():
            posts = await self.list_posts()
            current = position_of(posts, existing.id)
            if current is None:
                raise RecordNotFoundError(self.collection, existing.id)
            target = current if target_position is None else validate_position(
                target_position, len(posts) - 1
            )

            stored = posts[current]
            fields: dict = {"title": title, "description": description}
            updated = replace(stored, title=title, description=description)

            uploaded: list[str] = []
            with self._orphans_logged("edit", uploaded):
                if image is not None:
                    await self._discard(POST_IMAGES_PREFIX, stored.image_file_name)
                    image_name, image_url = await self._upload(POST_IMAGES_PREFIX, image)
                    uploaded.append(f"{POST_IMAGES_PREFIX}{image_name}")
                    fields.update(imageUrl=image_url, imageFileName=image_name)
                    updated = replace(updated, image_url=image_url, image_file_name=image_name)

                if content is not None and _content_changed(stored.content, content):
                    if isinstance(stored.content, FileContent):
                        await self._discard(POST_FILES_PREFIX, stored.content.file_name)
                    new_content = await self._store_content(content)
                    if isinstance(new_content, FileContent):
                        uploaded.append(f"{POST_FILES_PREFIX}{new_content.file_name}")
                    fields.update(content_fields(new_content))
                    updated = replace(updated, content=new_content)

                if target != current:
                    changes = plan_insert(posts, existing.id, updated, target)
                    logger.info(f"Moving post {existing.id} from {current} to {target} ({len(changes)} rank writes)")
                else:
                    changes = []
                await self._write_changes(changes, own_id=existing.id, own_fields=fields)
            return await self.get_post(existing.id)

    async def delete_post(self, post: Post) -> None:
        """Delete a post, its blobs, and close the gap in the ranks."""
        async with _submission():
            posts = await self.list_posts()
            await self.records.delete(self.collection, post.id)
            await self._discard(POST_IMAGES_PREFIX, post.image_file_name)
            if isinstance(post.content, FileContent):
                await self._discard(POST_FILES_PREFIX, post.content.file_name)

            changes = plan_removal(posts, post.id)
            await self._write_changes(changes)
            logger.info(f"Deleted post {post.id}; {len(changes)} rank(s) shifted")

    async def resequence(self) -> list[OrderChange]:
        """Rewrite stored ranks so they match display positions again."""
        async with _submission():
            posts = await self.list_posts()
            changes = plan_resequence(posts)
            await self._write_changes(changes)
            if changes:
                logger.info(f"Resequenced {len(changes)} post(s) in '{self.collection}'")
            return changes
