"""Post entity and its mapping to the flat record shape.

Records in the ``posts`` collection store content as three flat fields
(``fileUrl``, ``isExternalLink``, ``contentFileName``). In Python the content
is a sum type, ``FileContent`` or ``ExternalLink``, and the flat shape only
exists at the record store boundary.

Older rows can lack ``order``, ``isExternalLink`` or ``imageFileName``.
``post_from_record`` is the one place those rows are normalized.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from volvox.services.blob_store import POST_FILES_PREFIX, POST_IMAGES_PREFIX


# ─── Stored content ──────────────────────────────────────────────

@dataclass(frozen=True)
class FileContent:
    """Content uploaded to the blob store under post_files/."""
    url: str
    # None only for legacy rows whose blob key cannot be recovered
    file_name: Optional[str] = None


@dataclass(frozen=True)
class ExternalLink:
    url: str


Content = Union[FileContent, ExternalLink]


# ─── Submitted content ───────────────────────────────────────────

@dataclass(frozen=True)
class Upload:
    """Bytes submitted by the operator together with their original name."""
    filename: str
    data: bytes
    content_type: Optional[str] = None


@dataclass(frozen=True)
class ContentFile:
    upload: Upload


@dataclass(frozen=True)
class ContentUrl:
    url: str


ContentSelector = Union[ContentFile, ContentUrl]


# ─── Post ────────────────────────────────────────────────────────

@dataclass
class Post:
    id: str
    title: str
    description: str
    image_url: Optional[str] = None
    image_file_name: Optional[str] = None
    content: Optional[Content] = None
    # Stored rank; None when the record never had a usable one
    order: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_external_link(self) -> bool:
        return isinstance(self.content, ExternalLink)

    @property
    def file_url(self) -> Optional[str]:
        return self.content.url if self.content is not None else None

    @property
    def content_file_name(self) -> Optional[str]:
        if isinstance(self.content, FileContent):
            return self.content.file_name
        return None


def content_fields(content: Optional[Content]) -> dict:
    """Flatten content into fileUrl / isExternalLink / contentFileName."""
    if isinstance(content, ExternalLink):
        return {"fileUrl": content.url, "isExternalLink": True, "contentFileName": None}
    if isinstance(content, FileContent):
        return {"fileUrl": content.url, "isExternalLink": False, "contentFileName": content.file_name}
    return {"fileUrl": None, "isExternalLink": False, "contentFileName": None}


def post_to_fields(post: Post) -> dict:
    """Persisted field dict for a post. id and timestamps are server-owned."""
    return {
        "title": post.title,
        "description": post.description,
        "imageUrl": post.image_url,
        "imageFileName": post.image_file_name,
        **content_fields(post.content),
        "order": post.order,
    }


# ─── Legacy normalization ────────────────────────────────────────

PathForUrl = Callable[[Optional[str]], Optional[str]]


def _coerce_order(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    return None


def _name_under(prefix: str, path: Optional[str]) -> Optional[str]:
    if path and path.startswith(prefix) and len(path) > len(prefix):
        return path[len(prefix):]
    return None


def _normalize_content(record: dict, path_for_url: PathForUrl) -> Optional[Content]:
    file_url = record.get("fileUrl") or None
    content_file_name = record.get("contentFileName") or None
    is_external = record.get("isExternalLink")

    if is_external is True:
        return ExternalLink(url=file_url) if file_url else None
    if file_url is None:
        # File-backed row that lost its URL; keep the key so the blob can be cleaned up
        return FileContent(url="", file_name=content_file_name) if content_file_name else None
    if content_file_name is None:
        content_file_name = _name_under(POST_FILES_PREFIX, path_for_url(file_url))
    return FileContent(url=file_url, file_name=content_file_name)


def post_from_record(record: dict, path_for_url: Optional[PathForUrl] = None) -> Post:
    """Build a Post from a stored record, filling in what legacy rows lack."""
    path_for_url = path_for_url or (lambda url: None)
    image_url = record.get("imageUrl") or None
    image_file_name = record.get("imageFileName") or None
    if image_file_name is None and image_url is not None:
        image_file_name = _name_under(POST_IMAGES_PREFIX, path_for_url(image_url))

    return Post(
        id=record["id"],
        title=record.get("title") or "",
        description=record.get("description") or "",
        image_url=image_url,
        image_file_name=image_file_name,
        content=_normalize_content(record, path_for_url),
        order=_coerce_order(record.get("order")),
        created_at=record.get("createdAt"),
        updated_at=record.get("updatedAt"),
    )
