"""Tests for knowledge-base context resolution."""

from commerce_agent.rag import RagContextResolver, RagItemType


def test_resolve_keeps_allowed_metadata_only() -> None:
    hits = [{
        "type": "product",
        "content": "حذاء رياضي أسود مقاسات 40-45",
        "metadata": {"id": "p1", "price": 850, "cost": 300, "supplier": "X", "product_variants": [{"size": "42"}]},
    }]

    context = RagContextResolver().resolve(hits)

    item = context.items[0]
    assert item.index == 1
    assert item.type == RagItemType.PRODUCT
    assert item.metadata == {"id": "p1", "price": 850, "variants": [{"size": "42"}]}


def test_explicit_variants_win_over_renamed_field() -> None:
    metadata = {"product_variants": ["raw"], "variants": ["explicit"]}
    assert RagContextResolver.sanitize_metadata(metadata) == {"variants": ["explicit"]}


def test_product_falls_back_to_compressed_summary() -> None:
    hits = [{"type": "product", "content": "", "compressed": {"summary": "ملخص المنتج"}}]
    assert RagContextResolver().resolve(hits).items[0].content == "ملخص المنتج"


def test_invalid_hits_are_dropped_and_indexes_stay_dense() -> None:
    hits = [
        "not a dict",
        {"type": "unknown", "content": "x"},
        {"type": "faq", "content": "   "},
        {"type": "faq", "content": "الشحن خلال 3 أيام"},
        {"type": "policy", "content": "الاستبدال خلال 14 يوم"},
    ]

    context = RagContextResolver().resolve(hits)

    assert [item.index for item in context.items] == [1, 2]
    assert context.has_data
    assert not context.has_products


def test_format_for_prompt() -> None:
    resolver = RagContextResolver()
    context = resolver.resolve([{"type": "product", "content": "حذاء جلد - 1200 جنيه"}])

    text = resolver.format_for_prompt(context)

    assert "منتج 1:\nحذاء جلد - 1200 جنيه" in text
    assert resolver.format_for_prompt(resolver.resolve([])) == ""
    assert resolver.resolve(None).has_data is False
