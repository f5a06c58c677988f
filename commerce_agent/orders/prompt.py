"""
Single-pass order extraction prompt.

AI Assistant Notes:
- One instruction block: tenant personality, last N turns, current message,
  regex hints, status rules, fixed JSON schema
- The model must answer with JSON only; parser.py tolerates code fences
- Confirmation is only valid when the affirmation is in the current message
"""

from typing import Any, Dict, List, Optional

from commerce_agent.config import settings
from commerce_agent.memory.models import MemoryTurn, truncate_content
from .models import RegexHints

NOT_FOUND = "Not found"

OUTPUT_SCHEMA = """{
  "order": {
    "customerName": "...",
    "customerPhone": "...",
    "customerAddress": "...",
    "city": "...",
    "items": [{ "product": "...", "size": "...", "color": "...", "quantity": 1 }]
  },
  "missingFields": [],
  "status": "collecting_data | complete | confirmed | clarification_needed",
  "response": "..."
}"""


def format_history(history: List[MemoryTurn], max_turns: Optional[int] = None) -> str:
    """Render the last turns as 'العميل:' / 'النظام:' lines."""
    max_turns = max_turns or settings.order_history_turns
    lines = []
    for turn in history[-max_turns:]:
        speaker = "العميل" if turn.is_from_customer else "النظام"
        lines.append(f"{speaker}: {turn.content}")
    return "\n".join(lines) if lines else "(no previous messages)"


def build_prompt(
    message: str,
    history: List[MemoryTurn],
    hints: RegexHints,
    customer: Optional[Dict[str, Any]] = None,
    personality: Optional[str] = None,
    language: Optional[str] = None,
    knowledge: Optional[str] = None
) -> str:
    """
    Build the single extraction prompt.

    Args:
        message: Current customer message
        history: Previous turns, most recent last
        hints: Regex pre-pass results for the current message
        customer: Known customer record (name, phone), if any
        personality: Tenant personality/tone text
        language: Response language for the customer-facing text
        knowledge: Pre-formatted knowledge-base context, if any

    Returns:
        Prompt text
    """
    personality = (personality or "").strip() or settings.default_personality
    language = language or settings.response_language
    customer = customer or {}
    known_name = hints.customer_name or customer.get("name") or "Not known"

    knowledge_block = f"\n{knowledge}\n" if knowledge else ""

    return f"""
{personality}

You are an expert Sales Agent. Your goal is to collect order details and confirm the order in a friendly, efficient way.

CONTEXT:
Last {settings.order_history_turns} messages:
{format_history(history)}

Current Message: "{truncate_content(message)}"
{knowledge_block}
KNOWN DATA (Regex Hints, authoritative when the conversation does not say otherwise):
Phone: {hints.customer_phone or customer.get("phone") or NOT_FOUND}
Address: {hints.customer_address or NOT_FOUND}
City: {hints.city or NOT_FOUND}
Name: {known_name}
Size: {hints.product_size or NOT_FOUND}
Color: {hints.product_color or NOT_FOUND}

TASK:
1.  **Extract Order Details** from the whole conversation.
2.  **Determine Status**:
    *   `collecting_data`: If any required field is missing (Name, Phone, Address, City, Product).
    *   `complete`: If ALL required fields are present, BUT the customer has not confirmed in the CURRENT message.
    *   `confirmed`: If ALL required fields are present AND the CURRENT message explicitly confirms (e.g. "Yes", "Confirm", "Ok", "نعم", "تمام", "أكد").
        A confirmation in an earlier message NEVER counts.
    *   `clarification_needed`: If the request is ambiguous.
3.  **Generate Response**:
    *   If `collecting_data`: Ask for the missing fields (one question).
    *   If `complete`: Summarize the details and ask the customer to confirm the order.
    *   If `confirmed`: Say the order is being confirmed, without inventing an order number or delivery date.
    *   If `clarification_needed`: Ask a short clarifying question.

CRITICAL RULES:
*   Output **JSON ONLY**.
*   Response Language: {language}.
*   Required: customerName, customerPhone, customerAddress, city, product.
*   List every missing required field in "missingFields".

OUTPUT FORMAT:
{OUTPUT_SCHEMA}
"""
