"""
Order extraction engine: regex pre-pass + single language-model pass.

AI Assistant Notes:
- State machine over ExtractionResult.status:
  collecting_data -> {collecting_data, complete, clarification_needed}
  complete -> {complete, confirmed}; confirmed and error end the turn
- Each inbound message is evaluated from scratch; no state is resumed
- 'confirmed' requires every required field AND an affirmation in the
  current message; otherwise it is downgraded before any order is created
- Order numbers and delivery promises always come from templates, never from
  the model
- The engine does not deduplicate inbound messages; the orchestrator does
"""

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from commerce_agent.config import settings
from commerce_agent.database.models import OrderRecord
from commerce_agent.database.repositories import OrderRepository
from commerce_agent.errors import PersistenceFailure, ValidationError
from commerce_agent.llm.client import LanguageModelClient
from commerce_agent.memory.keys import TenantScopedKey
from commerce_agent.memory.store import MemoryStore
from commerce_agent.rag.resolver import RagContextResolver
from commerce_agent.shipping import ShippingLookup
from commerce_agent.utils import langfuse_client, observe
from .cleaning import clean_order_draft, validate_order_details
from .hints import extract_hints
from .models import ExtractionResult, ExtractionStatus, OrderDraft, OrderItem, RegexHints, REQUIRED_ORDER_FIELDS
from .parser import parse_model_output
from .prompt import build_prompt

logger = logging.getLogger(__name__)

GENERIC_APOLOGY = "عذراً، حدث خطأ مؤقت أثناء معالجة رسالتك. من فضلك حاول مرة أخرى."
ORDER_FAILURE_MESSAGE = "عذراً، حدث خطأ أثناء تسجيل الطلب. يرجى المحاولة مرة أخرى."
ORDER_CORRECTION_PREFIX = "من فضلك راجع البيانات التالية: "
ORDER_CONFIRMATION_TEMPLATE = (
    "تم تأكيد طلبك بنجاح! ✅\n\n"
    "رقم الطلب: {order_number}\n"
    "سيتم التوصيل خلال {delivery_time}.\n"
    " شكراً لثقتك بنا! ❤️"
)
CLARIFICATION_FALLBACK = "ممكن توضح طلبك أكتر؟"

FIELD_LABELS = {
    "customerName": "الاسم",
    "customerPhone": "رقم الموبايل",
    "customerAddress": "العنوان بالتفصيل",
    "city": "المحافظة",
    "product": "المنتج المطلوب",
}

AFFIRMATION_PATTERN = re.compile(
    r"(?<!\w)(?:yes|yeah|yep|confirm|confirmed|ok|okay|sure|"
    r"نعم|ايوه|ايوة|أيوه|أيوة|اه|آه|تمام|أكد|اكد|أكدت|اكدت|تأكيد|اكيد|أكيد|موافق|ماشي|خلاص)(?!\w)",
    re.IGNORECASE
)

DUPLICATE_ORDER_WINDOW = timedelta(minutes=5)


def contains_affirmation(message: Optional[str]) -> bool:
    """True if the message itself carries an explicit affirmation token."""
    return bool(AFFIRMATION_PATTERN.search(message or ""))


def missing_fields_prompt(missing: List[str]) -> str:
    labels = "، ".join(FIELD_LABELS.get(field, field) for field in missing)
    return f"علشان نكمل طلبك محتاجين: {labels}"


def confirmation_request(draft: OrderDraft) -> str:
    """Deterministic summary asking the customer to confirm."""
    item = draft.primary_item
    lines = ["من فضلك راجع بيانات طلبك:"]
    if item:
        lines.append(f"المنتج: {item.product}")
        if item.size:
            lines.append(f"المقاس: {item.size}")
        if item.color:
            lines.append(f"اللون: {item.color}")
        lines.append(f"الكمية: {item.quantity}")
    lines.extend([
        f"الاسم: {draft.customer_name}",
        f"الموبايل: {draft.customer_phone}",
        f"العنوان: {draft.customer_address} - {draft.city}",
        "",
        "هل تؤكد الطلب؟",
    ])
    return "\n".join(lines)


def _draft_from_hints(hints: RegexHints) -> Optional[OrderDraft]:
    if not hints.has_data:
        return None
    items = []
    if hints.product_size or hints.product_color:
        items.append(OrderItem(size=hints.product_size, color=hints.product_color))
    return OrderDraft(
        customer_name=hints.customer_name,
        customer_phone=hints.customer_phone,
        customer_address=hints.customer_address,
        city=hints.city,
        items=items
    )


def reconcile(result: ExtractionResult, hints: RegexHints, message: str) -> ExtractionResult:
    """
    Merge regex hints into the model result and enforce the state machine.

    - The phone hint wins when the model phone is missing or shorter than 10 digits
    - Other hints only fill fields the model left empty
    - Fields are normalized; missing_fields is recomputed from the draft
    - complete/confirmed with unresolved fields becomes collecting_data
    - confirmed without an affirmation in the current message becomes complete
    """
    if result.status == ExtractionStatus.ERROR:
        return result

    order = result.order
    if order is None:
        order = _draft_from_hints(hints)
    else:
        order = order.model_copy(deep=True)
        model_phone_digits = re.sub(r"[^0-9]", "", order.customer_phone or "")
        if hints.customer_phone and len(model_phone_digits) < 10:
            order.customer_phone = hints.customer_phone
        order.customer_name = order.customer_name or hints.customer_name
        order.customer_address = order.customer_address or hints.customer_address
        order.city = order.city or hints.city
        if order.items:
            item = order.items[0]
            item.size = item.size or hints.product_size
            item.color = item.color or hints.product_color

    if order is not None:
        order = clean_order_draft(order)
        missing = order.missing_fields()
    else:
        missing = list(REQUIRED_ORDER_FIELDS)

    status = result.status
    response = result.response

    if status in (ExtractionStatus.COMPLETE, ExtractionStatus.CONFIRMED) and missing:
        logger.info(f"Model reported {status.value} but fields are missing: {missing}")
        status = ExtractionStatus.COLLECTING_DATA
        response = missing_fields_prompt(missing)
    elif status == ExtractionStatus.CONFIRMED and not contains_affirmation(message):
        logger.info("Model reported confirmed without an affirmation in the current message")
        status = ExtractionStatus.COMPLETE
        response = confirmation_request(order)

    if not response:
        if status == ExtractionStatus.COLLECTING_DATA:
            response = missing_fields_prompt(missing)
        elif status == ExtractionStatus.COMPLETE:
            response = confirmation_request(order)
        elif status == ExtractionStatus.CLARIFICATION_NEEDED:
            response = CLARIFICATION_FALLBACK

    return ExtractionResult(order=order, missing_fields=missing, status=status, response=response)


class OrderExtractionEngine:
    """
    Drives one inbound message through hints, prompt, model, parse and reconcile,
    and creates the order when the customer confirms.
    """

    def __init__(
        self,
        memory: MemoryStore,
        llm_client: LanguageModelClient,
        order_repository: OrderRepository,
        shipping_lookup: Optional[ShippingLookup] = None,
        rag_resolver: Optional[RagContextResolver] = None,
        llm_timeout: Optional[float] = None,
        durable_timeout: Optional[float] = None
    ):
        """
        Initialize the engine with its collaborators.

        Args:
            memory: Conversation memory used for history
            llm_client: Language-model collaborator
            order_repository: Persistence for confirmed orders
            shipping_lookup: Delivery estimate source, optional
            rag_resolver: Knowledge context resolver, optional
            llm_timeout: Seconds allowed for the model call
            durable_timeout: Seconds allowed for each persistence call
        """
        self.memory = memory
        self.llm_client = llm_client
        self.order_repository = order_repository
        self.shipping_lookup = shipping_lookup
        self.rag_resolver = rag_resolver or RagContextResolver()
        self.llm_timeout = llm_timeout or settings.llm_timeout_seconds
        self.durable_timeout = durable_timeout or settings.durable_timeout_seconds

    async def _durable(self, operation, *args):
        return await asyncio.wait_for(asyncio.to_thread(operation, *args), timeout=self.durable_timeout)

    @staticmethod
    def _error_result(error: str, response: str = GENERIC_APOLOGY) -> ExtractionResult:
        return ExtractionResult(status=ExtractionStatus.ERROR, response=response, error=error)

    @observe(name="order_extraction", as_type="chain")
    async def process(
        self,
        key: TenantScopedKey,
        message: str,
        customer: Optional[Dict[str, Any]] = None,
        personality: Optional[str] = None,
        language: Optional[str] = None,
        knowledge_hits: Optional[Iterable[Dict[str, Any]]] = None
    ) -> ExtractionResult:
        """
        Evaluate one inbound customer message.

        Args:
            key: Tenant-scoped conversation key
            message: Current customer message
            customer: Known customer record (id, name, phone), if any
            personality: Tenant personality text
            language: Response language, defaults to settings.response_language
            knowledge_hits: Raw retrieval hits to include as context

        Returns:
            ExtractionResult; failures are reported with status=error

        Raises:
            IsolationError: key is not tenant scoped
            ValidationError: message is empty
        """
        key = MemoryStore._require_key(key)
        if not message or not message.strip():
            raise ValidationError("Cannot process an empty message")

        history = await self.memory.get_recent(key, settings.order_history_turns)
        hints = extract_hints(message)

        knowledge = None
        if knowledge_hits:
            knowledge = self.rag_resolver.format_for_prompt(self.rag_resolver.resolve(knowledge_hits)) or None

        prompt = build_prompt(
            message=message,
            history=history,
            hints=hints,
            customer=customer,
            personality=personality,
            language=language,
            knowledge=knowledge
        )

        try:
            reply = await asyncio.wait_for(
                self.llm_client.generate(prompt, key.tenant_id, {"purpose": "order_processing"}),
                timeout=self.llm_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Order extraction model call timed out for {key.cache_key}")
            return self._error_result("language model timeout")
        except Exception as e:
            logger.error(f"Order extraction model call failed for {key.cache_key}: {e}")
            return self._error_result(f"language model failure: {type(e).__name__}")

        parsed = parse_model_output(reply)
        if parsed is None:
            return self._error_result("unparseable model output")

        result = reconcile(parsed, hints, message)

        if result.status == ExtractionStatus.CONFIRMED:
            result = await self._place_order(key, result, customer)

        langfuse_client.log_extraction_outcome(
            status=result.status.value,
            missing_fields=result.missing_fields,
            order_number=result.order_created.order_number if result.order_created else None,
            metadata={"tenant_id": key.tenant_id, "hints_found": hints.has_data}
        )
        logger.info(f"Order extraction for {key.cache_key}: {result.status.value}")
        return result

    async def _delivery_time(self, city: str, tenant_id: str) -> str:
        if self.shipping_lookup is None:
            return settings.default_delivery_time
        try:
            estimate = await self._durable(self.shipping_lookup.estimate_delivery_time, city, tenant_id)
        except Exception as e:
            logger.warning(f"Shipping lookup failed for {city}: {e}")
            return settings.default_delivery_time
        return estimate or settings.default_delivery_time

    async def _create_order(
        self,
        draft: OrderDraft,
        tenant_id: str,
        customer_id: Optional[str]
    ) -> OrderRecord:
        """
        Create the order unless the same one was placed in the last few minutes.

        Raises:
            PersistenceFailure: lookup or insert failed or timed out
        """
        item = draft.primary_item
        try:
            existing = await self._durable(
                self.order_repository.find_recent_duplicate,
                tenant_id,
                draft.customer_phone,
                item.product,
                datetime.now(timezone.utc) - DUPLICATE_ORDER_WINDOW
            )
            if existing is not None:
                logger.warning(f"Reusing recent order {existing.order_number} instead of creating a duplicate")
                return existing
            return await self._durable(self.order_repository.create_order, draft, tenant_id, customer_id)
        except Exception as e:
            raise PersistenceFailure(f"Order creation failed: {e}") from e

    async def _place_order(
        self,
        key: TenantScopedKey,
        result: ExtractionResult,
        customer: Optional[Dict[str, Any]]
    ) -> ExtractionResult:
        validation = validate_order_details(result.order)
        for warning in validation.warnings:
            logger.warning(f"Order for {key.cache_key}: {warning}")
        if not validation.is_valid:
            logger.warning(f"Order for {key.cache_key} not placed: {validation.errors}")
            return result.model_copy(update={
                "status": ExtractionStatus.COLLECTING_DATA,
                "response": ORDER_CORRECTION_PREFIX + "، ".join(validation.errors),
            })

        customer_id = (customer or {}).get("id")
        try:
            record = await self._create_order(result.order, key.tenant_id, customer_id)
        except PersistenceFailure as e:
            logger.error(f"Failed to create order for {key.cache_key}: {e}")
            return result.model_copy(update={
                "status": ExtractionStatus.ERROR,
                "response": ORDER_FAILURE_MESSAGE,
                "error": str(e),
            })

        delivery_time = await self._delivery_time(record.city, key.tenant_id)
        logger.info(f"Created order {record.order_number} for tenant {key.tenant_id}")
        return result.model_copy(update={
            "response": ORDER_CONFIRMATION_TEMPLATE.format(
                order_number=record.order_number, delivery_time=delivery_time
            ),
            "order_created": record,
        })
