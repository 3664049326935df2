"""Dense ordering for the posts collection.

Each post stores its own rank in ``order``. At rest the ranks of N posts are
exactly 0..N-1. The planners here take the current ordered list and return
the ``(post_id, order)`` writes that restore that after an insert, a move or
a removal. Records whose rank does not change are left out of the plan.

Everything is pure: callers load the list, pass it in, and write the plan.
The whole sequence is renumbered on every change. Lists are small.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from volvox.services.posts.errors import PostValidationError
from volvox.services.posts.models import Post


@dataclass(frozen=True)
class OrderChange:
    post_id: str
    order: int


def _sort_key(post: Post) -> tuple:
    created = post.created_at.timestamp() if post.created_at is not None else None
    return (
        post.order is None,
        post.order if post.order is not None else 0,
        # newest first among equal ranks
        created is None,
        -created if created is not None else 0.0,
        post.id,
    )


def sort_posts(posts: Sequence[Post]) -> list[Post]:
    """Ascending order, missing ranks last, ties broken by createdAt newest first."""
    return sorted(posts, key=_sort_key)


def check_position_type(position) -> int:
    """Reject anything that is not a non-negative int. Needs no list."""
    if isinstance(position, bool) or not isinstance(position, int):
        raise PostValidationError(f"Position must be an integer, got {position!r}")
    if position < 0:
        raise PostValidationError(f"Position must not be negative, got {position}")
    return position


def validate_position(position, upper: int) -> int:
    """Return position if it is an int in [0, upper], else raise."""
    check_position_type(position)
    if position > upper:
        raise PostValidationError(f"Position must be between 0 and {upper}, got {position}")
    return position


def position_of(ordered: Sequence[Post], post_id: str) -> Optional[int]:
    for index, post in enumerate(ordered):
        if post.id == post_id:
            return index
    return None


def _renumber(sequence: Sequence[Post]) -> list[OrderChange]:
    return [
        OrderChange(post.id, index)
        for index, post in enumerate(sequence)
        if post.order != index
    ]


def plan_insert(
    currently_ordered: Sequence[Post],
    excluding_id: Optional[str],
    moved: Post,
    target_position: int,
) -> list[OrderChange]:
    """Plan the writes that place ``moved`` at ``target_position``.

    ``currently_ordered`` must already be sorted with ``sort_posts``. The
    record named by ``excluding_id`` (the moved record's old slot, if any) is
    dropped first, so the valid range is [0, len(remaining)].
    """
    remaining = [p for p in currently_ordered if p.id != excluding_id]
    validate_position(target_position, len(remaining))
    remaining.insert(target_position, moved)
    return _renumber(remaining)


def plan_removal(currently_ordered: Sequence[Post], removed_id: str) -> list[OrderChange]:
    """Plan the writes that close the gap left by ``removed_id``."""
    return _renumber([p for p in currently_ordered if p.id != removed_id])


def plan_resequence(currently_ordered: Sequence[Post]) -> list[OrderChange]:
    """Plan the writes that make stored ranks match positions again."""
    return _renumber(currently_ordered)


def detect_inconsistency(loaded: Sequence[Post]) -> bool:
    """True if any stored rank differs from its position after sorting."""
    return any(post.order != index for index, post in enumerate(sort_posts(loaded)))
