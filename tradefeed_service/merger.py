"""
Interleaving of featured and normal trades within one feed page
"""
from typing import List, Sequence, TypeVar
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


def merge_featured_with_normal(
    featured: Sequence[T],
    normal: Sequence[T],
    block_size: int = 4
) -> List[T]:
    """
    Merge featured and normal trades into display order.

    Up to `block_size` featured trades lead the page, then blocks of normal
    and featured trades alternate until the normal trades run out. Featured
    trades left over at that point are dropped for this page.

    Args:
        featured: Featured trades, in placement order
        normal: Normal trades, in recency order
        block_size: Maximum run length of either kind

    Returns:
        Merged list; every normal trade appears once, in order
    """
    if not isinstance(featured, (list, tuple)) or not isinstance(normal, (list, tuple)):
        logger.warning("Invalid merge input: featured or normal is not a list")
        return []

    if block_size < 1:
        raise ValueError("block_size must be positive")

    result: List[T] = list(featured[:block_size])
    featured_index = len(result)
    normal_index = 0

    while normal_index < len(normal):
        result.extend(normal[normal_index:normal_index + block_size])
        normal_index += block_size

        result.extend(featured[featured_index:featured_index + block_size])
        featured_index += block_size

    return result
