"""Posts domain: entity, dense ordering planners and the mutation service."""
from volvox.services.posts.errors import MutationInProgressError, PostValidationError
from volvox.services.posts.models import ContentFile, ContentUrl, Post, Upload
from volvox.services.posts.ordering import OrderChange
from volvox.services.posts.service import PostService

__all__ = [
    "MutationInProgressError",
    "PostValidationError",
    "ContentFile",
    "ContentUrl",
    "Post",
    "Upload",
    "OrderChange",
    "PostService",
]
