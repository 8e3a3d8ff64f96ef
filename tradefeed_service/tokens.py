"""
Search token construction for trade items
"""
import re
from typing import Iterable, List, Any

from .domain.models import TradeItem


def create_search_tokens(item_name: str) -> List[str]:
    """
    Build the tokens stored for one item name.

    The full lowercase name comes first, followed by each word. Duplicates
    are dropped, first occurrence wins.
    """
    name = item_name.lower().strip()
    if not name:
        return []

    tokens = [name]
    tokens.extend(w for w in re.split(r"\s+", name) if w)

    return list(dict.fromkeys(tokens))


def build_item_tokens(items: Iterable[Any]) -> List[str]:
    """Flatten the tokens of every named item on one side of a trade"""
    tokens: List[str] = []
    for item in items or []:
        if isinstance(item, TradeItem):
            name = item.name
        elif isinstance(item, dict):
            name = item.get("name") or item.get("Name")
        else:
            name = None

        if not name:
            continue
        tokens.extend(create_search_tokens(name))
    return tokens


def normalize_search_term(term: str) -> str:
    """Search terms are matched against lowercase tokens"""
    return (term or "").lower().strip()
