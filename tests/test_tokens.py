from tradefeed_service.domain.models import TradeItem
from tradefeed_service.tokens import (
    create_search_tokens,
    build_item_tokens,
    normalize_search_term,
)


def test_full_name_then_words():
    assert create_search_tokens("Mega Neon Frost Dragon") == [
        "mega neon frost dragon", "mega", "neon", "frost", "dragon",
    ]


def test_single_word_name_is_not_duplicated():
    assert create_search_tokens("Unicorn") == ["unicorn"]


def test_repeated_words_are_deduplicated_in_order():
    assert create_search_tokens("  Bat  Bat Dragon ") == [
        "bat  bat dragon", "bat", "dragon",
    ]


def test_blank_name_has_no_tokens():
    assert create_search_tokens("   ") == []


def test_build_item_tokens_skips_unnamed_items():
    items = [
        TradeItem(name="Frost Dragon"),
        {"Name": "Shadow Dragon"},
        {"name": ""},
        {"type": "pet"},
    ]

    assert build_item_tokens(items) == [
        "frost dragon", "frost", "dragon",
        "shadow dragon", "shadow", "dragon",
    ]


def test_normalize_search_term():
    assert normalize_search_term("  Dragon ") == "dragon"
    assert normalize_search_term(None) == ""
