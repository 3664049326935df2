"""Post API schemas. Python stays snake_case; JSON goes out as camelCase."""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PostResponse(CamelModel):
    id: str
    title: str
    description: str
    image_url: Optional[str] = None
    image_file_name: Optional[str] = None
    file_url: Optional[str] = None
    is_external_link: bool = False
    content_file_name: Optional[str] = None
    # Stored rank, and the post's index in the sorted list
    order: Optional[int] = None
    position: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PostListResponse(CamelModel):
    posts: list[PostResponse] = []
    order_consistent: bool = True


class OrderChangeResponse(CamelModel):
    id: str
    order: int


class ResequenceResponse(CamelModel):
    changes: list[OrderChangeResponse] = []


class DeleteResponse(CamelModel):
    deleted: bool = True
    id: str
