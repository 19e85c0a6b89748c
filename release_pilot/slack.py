"""Slack formatting, request verification and webhook posting."""
from __future__ import annotations

from collections.abc import Mapping

import requests
from loguru import logger
from slack_sdk.signature import SignatureVerifier

from release_pilot.config import Settings
from release_pilot.models import DigestEntry, DigestRunResult

MAX_SLACK_CHARS = 39000
SLACK_BLOCK_TEXT_LIMIT = 3000
SLACK_MAX_BLOCKS = 50
SLACK_HEADER_LIMIT = 150
HIGHLIGHT_DESCRIPTION_CHARS = 100
HTTP_ERROR_THRESHOLD = 400
NO_DIGEST_SLACK_TEXT = "No digest available. Run /digest run to create one."

SlackBlock = dict[str, object]


class SlackWebhookError(RuntimeError):
    """Raised when a Slack webhook call fails."""

    def __init__(self, status_code: int, text: str) -> None:
        """Create a Slack webhook error."""
        super().__init__(f"Slack webhook failed ({status_code}): {text}")


def verify_slack_request(
    settings: Settings,
    body: bytes,
    headers: Mapping[str, str],
    form: Mapping[str, str],
) -> bool:
    """Check a slash-command request against the configured secrets.

    Each configured secret must match; with none configured every request
    is accepted.
    """
    if settings.slack_signing_secret:
        verifier = SignatureVerifier(settings.slack_signing_secret)
        if not verifier.is_valid_request(body, dict(headers)):
            logger.warning("Slack signature verification failed")
            return False
    expected_token = settings.slack_verification_token
    if expected_token and form.get("token") != expected_token:
        logger.warning("Slack verification token mismatch")
        return False
    return True


def top_metric_value(digest: DigestEntry) -> str:
    return digest.metrics[0].value if digest.metrics else ""


def build_command_text(command: str, text: str, digest: DigestEntry) -> str:
    """Plain-text answer to a digest slash command."""
    if "week" in command or "week" in text:
        return (
            f"Weekly digest: {digest.summary}\n"
            f"Top metric: {top_metric_value(digest)}. View more in Release Pilot."
        )
    return f"Today: {digest.summary}\nTop metric: {top_metric_value(digest)}."


def digest_sections(digest: DigestEntry) -> str:
    """Render a digest body as Slack mrkdwn."""
    parts = [digest.summary]
    if digest.highlights:
        parts.append(
            "*Release Highlights*\n"
            + "\n".join(
                f"• *{highlight.title}* - {highlight.description[:HIGHLIGHT_DESCRIPTION_CHARS]}"
                for highlight in digest.highlights
            ),
        )
    if digest.metrics:
        parts.append(
            "*Health Metrics*\n"
            + "\n".join(
                f"• {metric.label}: *{metric.value}* {metric.trend} ({metric.delta})"
                for metric in digest.metrics
            ),
        )
    if digest.incidents:
        parts.append("*Incidents*\n" + "\n".join(f"• {incident}" for incident in digest.incidents))
    return "\n\n".join(parts)


def status_line(digest: DigestEntry) -> str:
    date_text = digest.date.strftime("%Y-%m-%d %H:%M UTC")
    return f"*Status:* {digest.status.upper()} | *Date:* {date_text}"


def trim_message(message: str) -> str:
    """Trim the message to fit Slack limits."""
    if len(message) <= MAX_SLACK_CHARS:
        return message
    return message[: MAX_SLACK_CHARS - 100] + "\n\n[truncated]"


def split_long_line(line: str) -> list[str]:
    """Slice a line that alone would overflow a section block."""
    if len(line) <= SLACK_BLOCK_TEXT_LIMIT:
        return [line]
    return [
        line[start : start + SLACK_BLOCK_TEXT_LIMIT]
        for start in range(0, len(line), SLACK_BLOCK_TEXT_LIMIT)
    ]


def chunk_slack_text(message: str) -> list[str]:
    """Split message into Slack block-sized chunks on newline boundaries."""
    if not message:
        return [""]
    lines = [piece for line in message.split("\n") for piece in split_long_line(line)]
    chunks: list[str] = []
    current: list[str] = []
    current_len = 0
    for line in lines:
        # +1 accounts for the newline joining character
        added = len(line) + (1 if current else 0)
        if current and current_len + added > SLACK_BLOCK_TEXT_LIMIT:
            chunks.append("\n".join(current))
            current = []
            current_len = 0
        current.append(line)
        current_len += added
    if current:
        chunks.append("\n".join(current))
    return chunks


def build_blocks(title: str, context_text: str, message: str) -> list[SlackBlock]:
    """Lay out a header, a context line and the message as section blocks."""
    header_blocks: list[SlackBlock] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": title[:SLACK_HEADER_LIMIT]},
        },
        {"type": "context", "elements": [{"type": "mrkdwn", "text": context_text}]},
        {"type": "divider"},
    ]
    max_sections = SLACK_MAX_BLOCKS - len(header_blocks)
    chunks = chunk_slack_text(message)
    if len(chunks) <= max_sections:
        sections = chunks
    else:
        sections = chunks[: max_sections - 1]
        sections.append("[truncated]")
    return header_blocks + [
        {"type": "section", "text": {"type": "mrkdwn", "text": section}}
        for section in sections
    ]


def build_digest_blocks(digest: DigestEntry) -> list[SlackBlock]:
    """Structured Slack message for a digest."""
    return build_blocks(digest.title, status_line(digest), digest_sections(digest))


def build_command_response(command: str, text: str, digest: DigestEntry | None) -> dict[str, object]:
    """Slash-command response payload for the latest digest."""
    if digest is None:
        return {"response_type": "ephemeral", "text": NO_DIGEST_SLACK_TEXT}
    response_type = "in_channel" if "channel" in text else "ephemeral"
    plain = build_command_text(command, text, digest)
    if "week" in command or "week" in text:
        return {"response_type": response_type, "text": plain}
    return {
        "response_type": response_type,
        "text": plain,
        "blocks": build_digest_blocks(digest),
    }


def build_run_response(result: DigestRunResult) -> dict[str, object]:
    """Slash-command response for a digest run triggered from Slack."""
    if not result.ok or result.digest is None:
        return {"response_type": "ephemeral", "text": f"Digest run failed: {result.error}"}
    digest = result.digest
    return {
        "response_type": "ephemeral",
        "text": f"Digest {digest.id} created with status {digest.status.upper()}.",
        "blocks": build_digest_blocks(digest),
    }


def post_to_slack(webhook_url: str, message: str, title: str, context_text: str) -> None:
    """Post a message to Slack via webhook."""
    blocks = build_blocks(title, context_text, message)
    response = requests.post(
        webhook_url,
        json={"text": trim_message(message), "blocks": blocks},
        timeout=30,
    )
    if response.status_code >= HTTP_ERROR_THRESHOLD:
        raise SlackWebhookError(response.status_code, response.text)


def post_digest_to_slack(webhook_url: str, digest: DigestEntry) -> None:
    """Post a digest to a Slack incoming webhook."""
    post_to_slack(webhook_url, digest_sections(digest), digest.title, status_line(digest))
    logger.info("Posted digest to Slack", id=digest.id)
