"""Tests for the single-pass order extraction engine."""

import asyncio
from unittest.mock import MagicMock

import pytest

from commerce_agent.config import settings
from commerce_agent.database import ShippingZone
from commerce_agent.errors import ValidationError
from commerce_agent.memory import TenantScopedKey
from commerce_agent.orders import (
    ExtractionResult,
    ExtractionStatus,
    OrderDraft,
    OrderItem,
    RegexHints,
    contains_affirmation,
    reconcile,
)
from commerce_agent.orders.engine import ORDER_CORRECTION_PREFIX, ORDER_FAILURE_MESSAGE


# -- affirmation --------------------------------------------------------------


@pytest.mark.parametrize("message", ["yes, confirm", "OK", "تمام كده", "أكد الطلب", "ايوه"])
def test_affirmations_are_detected(message: str) -> None:
    assert contains_affirmation(message)


@pytest.mark.parametrize("message", ["what's the price again?", "مرحبا", "بكام الشحن؟", "", None])
def test_non_affirmations(message) -> None:
    assert not contains_affirmation(message)


# -- reconcile ----------------------------------------------------------------


class TestReconcile:
    def test_hint_phone_overrides_short_model_phone(self, complete_draft) -> None:
        draft = complete_draft.model_copy(update={"customer_phone": "0101234"})
        result = ExtractionResult(order=draft, status=ExtractionStatus.COMPLETE, response="راجع الطلب")

        reconciled = reconcile(result, RegexHints(has_data=True, customer_phone="01012345678"), "رقمي 01012345678")

        assert reconciled.order.customer_phone == "01012345678"
        assert reconciled.missing_fields == []
        assert reconciled.status == ExtractionStatus.COMPLETE

    def test_hints_fill_empty_fields_only(self) -> None:
        draft = OrderDraft(customer_name="منى علي", city="الجيزة", items=[OrderItem(product="صندل")])
        result = ExtractionResult(order=draft, status=ExtractionStatus.COLLECTING_DATA, response="العنوان؟")
        hints = RegexHints(has_data=True, city="القاهرة", product_color="احمر", customer_address="شارع الهرم")

        reconciled = reconcile(result, hints, "شارع الهرم لون احمر")

        assert reconciled.order.city == "الجيزة"
        assert reconciled.order.customer_address == "شارع الهرم"
        assert reconciled.order.items[0].color == "أحمر"
        assert reconciled.missing_fields == ["customerPhone"]

    def test_draft_built_from_hints_when_model_has_none(self) -> None:
        result = ExtractionResult(status=ExtractionStatus.COLLECTING_DATA, response="")
        hints = RegexHints(has_data=True, customer_phone="01098765432", product_size="40")

        reconciled = reconcile(result, hints, "01098765432 مقاس 40")

        assert reconciled.order.customer_phone == "01098765432"
        assert reconciled.order.items[0].size == "40"
        assert "product" in reconciled.missing_fields
        assert reconciled.response

    def test_complete_with_missing_fields_is_downgraded(self) -> None:
        draft = OrderDraft(customer_name="أحمد محمد", items=[OrderItem(product="حذاء")])
        result = ExtractionResult(order=draft, status=ExtractionStatus.COMPLETE, response="هل تؤكد؟")

        reconciled = reconcile(result, RegexHints(), "تمام")

        assert reconciled.status == ExtractionStatus.COLLECTING_DATA
        assert "رقم الموبايل" in reconciled.response

    def test_confirmed_without_affirmation_becomes_complete(self, complete_draft) -> None:
        result = ExtractionResult(order=complete_draft, status=ExtractionStatus.CONFIRMED, response="تم")

        reconciled = reconcile(result, RegexHints(), "بكام الشحن؟")

        assert reconciled.status == ExtractionStatus.COMPLETE
        assert "هل تؤكد الطلب؟" in reconciled.response


# -- process ------------------------------------------------------------------


async def test_greeting_keeps_collecting(engine, key) -> None:
    result = await engine.process(key, "مرحبا")

    assert result.status == ExtractionStatus.COLLECTING_DATA
    assert result.order is None
    assert result.order_created is None
    assert result.response == "ممكن الاسم؟"


async def test_empty_message_is_rejected(engine, key) -> None:
    with pytest.raises(ValidationError):
        await engine.process(key, "   ")


async def test_explicit_confirmation_creates_order(engine, llm, reply, complete_order_json, order_repository, key) -> None:
    llm.generate.return_value = reply("confirmed", complete_order_json, "جاري تأكيد الطلب")

    result = await engine.process(key, "yes, confirm")

    assert result.status == ExtractionStatus.CONFIRMED
    assert result.order_created is not None
    assert result.order_created.order_number in result.response
    assert settings.default_delivery_time in result.response
    stored = order_repository.get_by_number(result.order_created.order_number, key.tenant_id)
    assert stored.customer_phone == "01012345678"
    assert stored.product_name == "حذاء رياضي"


async def test_confirmed_without_affirmation_creates_no_order(engine, llm, reply, complete_order_json, key) -> None:
    llm.generate.return_value = reply("confirmed", complete_order_json)

    result = await engine.process(key, "what's the price again?")

    assert result.status == ExtractionStatus.COMPLETE
    assert result.order_created is None


async def test_repeated_confirmation_reuses_recent_order(engine, llm, reply, complete_order_json, key) -> None:
    llm.generate.return_value = reply("confirmed", complete_order_json)

    first = await engine.process(key, "تمام أكد")
    second = await engine.process(key, "تمام أكد")

    assert first.order_created.order_number == second.order_created.order_number


async def test_delivery_time_comes_from_shipping_zone(
    engine, llm, reply, complete_order_json, shipping_repository, key
) -> None:
    shipping_repository.upsert_zone(ShippingZone(tenant_id=key.tenant_id, governorate="القاهرة", delivery_time="يومين"))
    llm.generate.return_value = reply("confirmed", complete_order_json)

    result = await engine.process(key, "نعم")

    assert "سيتم التوصيل خلال يومين." in result.response


async def test_order_without_size_or_color_is_placed_with_warnings(
    engine, llm, reply, complete_order_json, key, caplog
) -> None:
    complete_order_json["items"] = [{"product": "حذاء رياضي"}]
    llm.generate.return_value = reply("confirmed", complete_order_json)

    with caplog.at_level("WARNING", logger="commerce_agent.orders.engine"):
        result = await engine.process(key, "yes")

    assert result.order_created is not None
    assert "اللون مفقود" in caplog.text
    assert "المقاس مفقود" in caplog.text


async def test_invalid_draft_is_not_placed(engine, complete_draft, key) -> None:
    draft = complete_draft.model_copy(update={"customer_phone": "0123"})
    result = ExtractionResult(order=draft, status=ExtractionStatus.CONFIRMED, response="تم")

    placed = await engine._place_order(key, result, None)

    assert placed.status == ExtractionStatus.COLLECTING_DATA
    assert placed.response.startswith(ORDER_CORRECTION_PREFIX)
    assert "0123" in placed.response
    assert placed.order_created is None


async def test_order_persistence_failure_reports_error(
    engine, llm, reply, complete_order_json, order_repository, key, monkeypatch
) -> None:
    llm.generate.return_value = reply("confirmed", complete_order_json)
    monkeypatch.setattr(order_repository, "create_order", MagicMock(side_effect=RuntimeError("db locked")))

    result = await engine.process(key, "yes")

    assert result.status == ExtractionStatus.ERROR
    assert result.response == ORDER_FAILURE_MESSAGE
    assert result.order_created is None
    assert result.error


async def test_model_failure_reports_error(engine, llm, key) -> None:
    llm.generate.side_effect = RuntimeError("upstream 500")

    result = await engine.process(key, "عايز حذاء")

    assert result.status == ExtractionStatus.ERROR
    assert result.order is None
    assert result.response


async def test_model_timeout_reports_error(engine, llm, key) -> None:
    async def slow(*args, **kwargs):
        await asyncio.sleep(5)

    llm.generate.side_effect = slow
    engine.llm_timeout = 0.05

    result = await engine.process(key, "عايز حذاء")

    assert result.status == ExtractionStatus.ERROR
    assert "timeout" in result.error


async def test_unparseable_model_output_reports_error(engine, llm, key) -> None:
    llm.generate.return_value = MagicMock(content="Sorry, I can't help with that.")

    result = await engine.process(key, "عايز حذاء")

    assert result.status == ExtractionStatus.ERROR
    assert result.order_created is None


async def test_phone_hint_reconciles_model_phone(engine, llm, reply, key) -> None:
    llm.generate.return_value = reply(
        "collecting_data",
        {"customerName": "سارة", "customerPhone": "0101", "items": [{"product": "حذاء"}]},
        "العنوان؟"
    )

    result = await engine.process(key, "رقمي 01012345678")

    assert result.order.customer_phone == "01012345678"
    assert "customerPhone" not in result.missing_fields


async def test_history_is_passed_to_prompt(engine, llm, memory, key) -> None:
    await memory.append(key, "عايز حذاء رياضي", "متاح مقاس 40 لـ 45")

    await engine.process(key, "مقاس 42")

    prompt = llm.generate.call_args.args[0]
    assert "العميل: عايز حذاء رياضي" in prompt
    assert "النظام: متاح مقاس 40 لـ 45" in prompt
    assert llm.generate.call_args.args[1] == key.tenant_id


async def test_knowledge_hits_reach_prompt(engine, llm, key) -> None:
    hits = [{"type": "product", "content": "حذاء رياضي - 850 جنيه", "metadata": {"cost": 300}}]

    await engine.process(key, "بكام؟", knowledge_hits=hits)

    prompt = llm.generate.call_args.args[0]
    assert "حذاء رياضي - 850 جنيه" in prompt
    assert "300" not in prompt


async def test_tenant_history_does_not_leak_into_prompt(engine, llm, memory) -> None:
    await memory.append(TenantScopedKey("other_store", "cust_1", "conv_1"), "سر المتجر الآخر", "ok")

    await engine.process(TenantScopedKey("shoe_store", "cust_1", "conv_1"), "مرحبا")

    assert "سر المتجر الآخر" not in llm.generate.call_args.args[0]
