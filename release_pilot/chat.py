"""Chat assistant answering questions from recent digests."""
from __future__ import annotations

import time
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from loguru import logger
from openai import OpenAI, OpenAIError
from pydantic import BaseModel

from release_pilot.config import Settings
from release_pilot.digest import get_latest_digest, list_digests
from release_pilot.models import ChatMessage, DigestEntry, QuickAction
from release_pilot.store import DigestStore

SYSTEM_PROMPT = (
    "You are Release Pilot, an MCP-aware assistant that summarizes releases and "
    "health metrics for PMs. Keep answers grounded in provided digest data."
)
LLM_SYSTEM_PROMPT = (
    "You are Release Pilot, an AI assistant that helps PMs understand release "
    "health and deployment status.\n\n"
    "Be concise and specific. Reference actual data from the digests provided. "
    "Use bullet points when listing multiple items. Keep responses under 150 "
    "words unless more detail is explicitly requested.\n\n"
    "Current context:\n"
)
NO_DIGEST_REPLY = (
    "I don't have any digests yet, but you can trigger one from the admin panel or Slack."
)
NO_INCIDENTS_REPLY = "No incidents were reported in the last cycle."
DETAIL_HINT = 'Need more detail? Ask for "health metrics" or "incidents".'
LLM_CONTEXT_DIGESTS = 3
TREND_DIGESTS = 4
TOP_HIGHLIGHTS = 2
LLM_TEMPERATURE = 0.7
LLM_MAX_TOKENS = 500

QUICK_ACTIONS = [
    QuickAction(
        id="latest_digest",
        label="Today's digest",
        prompt="Summarize what shipped today.",
        description="Overview of release highlights and incidents.",
    ),
    QuickAction(
        id="health_focus",
        label="Health metrics",
        prompt="How are key health metrics trending?",
        description="Crash-free, deployments, adoption.",
    ),
    QuickAction(
        id="incidents",
        label="Incidents",
        prompt="Any incidents I should know about?",
        description="Summarize open risks or mitigations.",
    ),
]


class OpenAIEmptyResponseError(RuntimeError):
    """Raised when OpenAI returns no content."""

    def __init__(self) -> None:
        """Create an empty response error."""
        super().__init__("OpenAI response missing content.")


class ReplyVariant(str, Enum):
    """Kinds of canned reply."""

    NO_DIGEST = "no_digest"
    HIGHLIGHTS = "highlights"
    HEALTH = "health"
    INCIDENTS = "incidents"
    TREND = "trend"
    SUMMARY = "summary"


ACTION_VARIANTS = {
    "latest_digest": ReplyVariant.HIGHLIGHTS,
    "health_focus": ReplyVariant.HEALTH,
    "incidents": ReplyVariant.INCIDENTS,
}


class ChatAnswer(BaseModel):
    """Reply plus the digests it was drawn from."""

    reply: ChatMessage
    references: list[DigestEntry]


def classify_reply(action_id: str | None, message: str, has_digest: bool) -> ReplyVariant:
    """Pick the canned reply for a quick action or free-text question."""
    if not has_digest:
        return ReplyVariant.NO_DIGEST
    if action_id in ACTION_VARIANTS:
        return ACTION_VARIANTS[action_id]
    text = message.lower()
    if "trend" in text or "week" in text:
        return ReplyVariant.TREND
    if "highlight" in text:
        return ReplyVariant.HIGHLIGHTS
    return ReplyVariant.SUMMARY


def format_day(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def summarize_digest(digest: DigestEntry) -> str:
    top = "\n".join(
        f"• {highlight.title}: {highlight.impact}"
        for highlight in digest.highlights[:TOP_HIGHLIGHTS]
    )
    return f"{digest.summary}\n\nHighlights:\n{top}"


def summarize_metrics(digest: DigestEntry) -> str:
    lines = "\n".join(
        f"• {metric.label}: {metric.value} ({metric.delta}, {metric.trend}) – {metric.status}"
        for metric in digest.metrics
    )
    return f"Here's how health looks for {digest.title}:\n{lines}"


def summarize_incidents(digest: DigestEntry) -> str:
    if not digest.incidents:
        return NO_INCIDENTS_REPLY
    lines = "\n".join(f"• {incident}" for incident in digest.incidents)
    return f"Incident recap:\n{lines}"


def summarize_trend(digests: list[DigestEntry]) -> str:
    trend_line = " → ".join(
        f"{format_day(digest.date)}: {digest.status}" for digest in digests[:TREND_DIGESTS]
    )
    return f"{summarize_metrics(digests[0])}\n\n7-day trend: {trend_line}"


def render_reply(variant: ReplyVariant, digests: list[DigestEntry]) -> str:
    """Render a canned reply from the newest-first ``digests``."""
    if variant is ReplyVariant.NO_DIGEST or not digests:
        return NO_DIGEST_REPLY
    latest = digests[0]
    if variant is ReplyVariant.HIGHLIGHTS:
        return summarize_digest(latest)
    if variant is ReplyVariant.HEALTH:
        return summarize_metrics(latest)
    if variant is ReplyVariant.INCIDENTS:
        return summarize_incidents(latest)
    if variant is ReplyVariant.TREND:
        return summarize_trend(digests)
    return f"{latest.summary}\n{DETAIL_HINT}"


def build_reply(message: str, action_id: str | None, digests: list[DigestEntry]) -> str:
    """Answer without a language model."""
    return render_reply(classify_reply(action_id, message, bool(digests)), digests)


def build_llm_context(digests: list[DigestEntry]) -> str:
    """Serialize recent digests as prompt context."""
    blocks = []
    for digest in digests[:LLM_CONTEXT_DIGESTS]:
        highlights = "\n".join(
            f"- {highlight.title}: {highlight.description}" for highlight in digest.highlights
        )
        metrics = "\n".join(
            f"- {metric.label}: {metric.value} ({metric.trend})" for metric in digest.metrics
        )
        blocks.append(
            f"Date: {format_day(digest.date)}\n"
            f"Status: {digest.status}\n"
            f"Summary: {digest.summary}\n"
            f"Highlights:\n{highlights}\n"
            f"Metrics:\n{metrics}\n"
            f"Incidents: {'; '.join(digest.incidents)}",
        )
    return "\n\n---\n\n".join(blocks)


def ask_openai(
    client: OpenAI,
    model: str,
    message: str,
    digests: list[DigestEntry],
) -> str:
    """Answer with OpenAI, grounding the model in recent digests."""
    start = time.perf_counter()
    response = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": LLM_SYSTEM_PROMPT + build_llm_context(digests)},
            {"role": "user", "content": message},
        ],
        temperature=LLM_TEMPERATURE,
        max_tokens=LLM_MAX_TOKENS,
    )
    usage = response.usage
    logger.info(
        "LLM call completed",
        model=model,
        elapsed=f"{time.perf_counter() - start:.2f}s",
        total_tokens=getattr(usage, "total_tokens", None),
    )
    content = response.choices[0].message.content if response.choices else None
    if not content:
        raise OpenAIEmptyResponseError
    return content.strip()


def answer_question(
    settings: Settings,
    store: DigestStore,
    message: str,
    action_id: str | None = None,
    client: OpenAI | None = None,
) -> ChatAnswer:
    """Answer a chat message from the most recent digests."""
    digests = list_digests(store)
    content: str | None = None
    if settings.openai_api_key:
        client = client or OpenAI(api_key=settings.openai_api_key)
        try:
            content = ask_openai(client, settings.openai_model, message, digests)
        except (OpenAIError, OpenAIEmptyResponseError) as exc:
            logger.warning("OpenAI error, falling back to canned reply", error=str(exc))
    if content is None:
        content = build_reply(message, action_id, digests)
    return ChatAnswer(
        reply=ChatMessage(
            id=str(uuid4()),
            role="assistant",
            content=content,
            timestamp=datetime.now(UTC),
            action_id=action_id,
        ),
        references=digests,
    )


def bootstrap_messages(store: DigestStore) -> list[ChatMessage]:
    """Return the opening messages for a new conversation."""
    now = datetime.now(UTC)
    messages = [ChatMessage(id=str(uuid4()), role="system", content=SYSTEM_PROMPT, timestamp=now)]
    latest = get_latest_digest(store)
    if latest is not None:
        messages.append(
            ChatMessage(
                id=str(uuid4()),
                role="assistant",
                content=f"Morning! {latest.summary}",
                timestamp=now,
            ),
        )
    return messages
