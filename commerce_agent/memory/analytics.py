"""
Customer and conversation analytics over durable memory records.

Pure functions: the MemoryStore fetches the records, these functions only
aggregate them.
"""

import math
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from commerce_agent.database.models import ConversationMemoryRecord

SENTIMENT_SCORES = {"positive": 1, "neutral": 0, "negative": -1}

# (minimum interactions, customer type), checked top-down
CUSTOMER_TYPE_THRESHOLDS = (
    (20, "frequent_customer"),
    (10, "regular_customer"),
    (5, "returning_customer"),
)


class CustomerProfile(BaseModel):
    """Interaction patterns of one participant within one tenant."""
    tenant_id: str
    participant_id: str
    total_interactions: int
    most_common_intent: Optional[str] = None
    dominant_sentiment: Optional[str] = None
    preferred_interaction_hour: int
    interaction_frequency: float = Field(..., description="Interactions per day")
    intent_distribution: Dict[str, int] = Field(default_factory=dict)
    sentiment_distribution: Dict[str, int] = Field(default_factory=dict)
    first_seen: datetime
    last_seen: datetime
    customer_type: str


class TopicCount(BaseModel):
    intent: str
    count: int


class ConversationSummary(BaseModel):
    """Outline of a single conversation."""
    tenant_id: str
    conversation_id: str
    participant_id: str
    total_messages: int
    start_time: datetime
    end_time: datetime
    duration: str
    main_topics: List[TopicCount] = Field(default_factory=list)
    overall_sentiment: str
    resolution_status: str


class MemoryStats(BaseModel):
    """Counters for operators."""
    tenant_id: Optional[str] = None
    durable_records: int
    unique_participants: int
    cached_keys: int
    cached_turns: int
    retention_days: int
    isolated: bool
    generated_at: datetime


def _most_common(values: List[Optional[str]]) -> Optional[str]:
    counts = Counter(v for v in values if v)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def categorize_customer(total_interactions: int) -> str:
    for minimum, customer_type in CUSTOMER_TYPE_THRESHOLDS:
        if total_interactions >= minimum:
            return customer_type
    return "new_customer"


def build_customer_profile(
    tenant_id: str,
    participant_id: str,
    records: List[ConversationMemoryRecord]
) -> Optional[CustomerProfile]:
    """
    Analyze a participant's records, newest first.

    Returns:
        None when there are no records
    """
    if not records:
        return None

    total = len(records)
    intents = [r.intent for r in records]
    sentiments = [r.sentiment for r in records]
    hours = [r.timestamp.hour for r in records]

    first_seen = records[-1].timestamp
    last_seen = records[0].timestamp
    days_between = math.ceil((last_seen - first_seen).total_seconds() / 86400)

    return CustomerProfile(
        tenant_id=tenant_id,
        participant_id=participant_id,
        total_interactions=total,
        most_common_intent=_most_common(intents),
        dominant_sentiment=_most_common(sentiments),
        preferred_interaction_hour=round(sum(hours) / total),
        interaction_frequency=round(total / max(days_between, 1), 2),
        intent_distribution=dict(Counter(i for i in intents if i)),
        sentiment_distribution=dict(Counter(s for s in sentiments if s)),
        first_seen=first_seen,
        last_seen=last_seen,
        customer_type=categorize_customer(total)
    )


def extract_main_topics(records: List[ConversationMemoryRecord], top: int = 3) -> List[TopicCount]:
    counts = Counter(r.intent for r in records if r.intent)
    return [TopicCount(intent=intent, count=count) for intent, count in counts.most_common(top)]


def overall_sentiment(records: List[ConversationMemoryRecord]) -> str:
    """Average sentiment score with a +/-0.3 neutral band."""
    if not records:
        return "neutral"
    score = sum(SENTIMENT_SCORES.get(r.sentiment or "", 0) for r in records) / len(records)
    if score > 0.3:
        return "positive"
    if score < -0.3:
        return "negative"
    return "neutral"


def resolution_status(records: List[ConversationMemoryRecord]) -> str:
    if records and records[-1].sentiment in ("positive", "neutral"):
        return "resolved"
    return "needs_followup"


def format_duration(start: datetime, end: datetime) -> str:
    minutes = round((end - start).total_seconds() / 60)
    if minutes < 60:
        return f"{minutes} دقيقة"
    return f"{minutes // 60} ساعة و {minutes % 60} دقيقة"


def build_conversation_summary(
    tenant_id: str,
    conversation_id: str,
    participant_id: str,
    records: List[ConversationMemoryRecord]
) -> Optional[ConversationSummary]:
    """Summarize a conversation from its records, oldest first."""
    if not records:
        return None

    start, end = records[0].timestamp, records[-1].timestamp
    return ConversationSummary(
        tenant_id=tenant_id,
        conversation_id=conversation_id,
        participant_id=participant_id,
        total_messages=len(records),
        start_time=start,
        end_time=end,
        duration=format_duration(start, end),
        main_topics=extract_main_topics(records),
        overall_sentiment=overall_sentiment(records),
        resolution_status=resolution_status(records)
    )
