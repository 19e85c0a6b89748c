"""HTTP API: digests, chat and the Slack slash-command endpoint."""
from __future__ import annotations

import json
from functools import lru_cache
from urllib.parse import parse_qs

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from release_pilot import __version__
from release_pilot.chat import QUICK_ACTIONS, ChatAnswer, answer_question, bootstrap_messages
from release_pilot.config import Settings, get_settings
from release_pilot.digest import (
    DEFAULT_LIST_LIMIT,
    get_latest_digest,
    list_digests,
    trigger_digest_run,
)
from release_pilot.models import CamelModel, ChatMessage, DigestEntry, QuickAction
from release_pilot.slack import build_command_response, build_run_response, verify_slack_request
from release_pilot.store import DigestStore, create_store

MAX_LIST_LIMIT = 50


class DigestList(BaseModel):
    digests: list[DigestEntry]


class QuickActionList(BaseModel):
    actions: list[QuickAction]


class MessageList(BaseModel):
    messages: list[ChatMessage]


class DigestRunRequest(CamelModel):
    product_id: str | None = None
    dry_run: bool = False


class ChatRequest(CamelModel):
    message: str | None = None
    action_id: str | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    """Settings shared by every request."""
    return get_settings()


@lru_cache(maxsize=4)
def open_store(database_url: str) -> DigestStore:
    return create_store(database_url)


def get_store(settings: Settings = Depends(get_app_settings)) -> DigestStore:
    """Digest store for the configured database."""
    return open_store(settings.database_url)


router = APIRouter()


@router.get("/digests", response_model=DigestList)
def get_digests(
    limit: int = Query(default=DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    store: DigestStore = Depends(get_store),
) -> DigestList:
    return DigestList(digests=list_digests(store, limit))


@router.post("/digests")
def run_digest(
    body: DigestRunRequest | None = Body(default=None),
    settings: Settings = Depends(get_app_settings),
    store: DigestStore = Depends(get_store),
) -> JSONResponse:
    request = body or DigestRunRequest()
    product_id = request.product_id or settings.default_product_id
    result = trigger_digest_run(settings, store, product_id, dry_run=request.dry_run)
    return JSONResponse(
        content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
        status_code=200 if result.ok else 500,
    )


@router.post("/chat", response_model=ChatAnswer)
def chat(
    body: ChatRequest | None = Body(default=None),
    settings: Settings = Depends(get_app_settings),
    store: DigestStore = Depends(get_store),
) -> ChatAnswer | JSONResponse:
    if body is None or not body.message:
        return JSONResponse(content={"error": "Message is required."}, status_code=400)
    return answer_question(settings, store, body.message, body.action_id)


@router.get("/chat/actions", response_model=QuickActionList)
def chat_actions() -> QuickActionList:
    return QuickActionList(actions=QUICK_ACTIONS)


@router.get("/chat/bootstrap", response_model=MessageList)
def chat_bootstrap(store: DigestStore = Depends(get_store)) -> MessageList:
    return MessageList(messages=bootstrap_messages(store))


@router.post("/slack")
async def slack_command(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    store: DigestStore = Depends(get_store),
) -> JSONResponse:
    """Answer Slack URL verification and digest slash commands."""
    raw_body = await request.body()
    if "application/json" in request.headers.get("content-type", ""):
        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError:
            payload = None
        if (
            isinstance(payload, dict)
            and payload.get("type") == "url_verification"
            and payload.get("challenge")
        ):
            return JSONResponse(content={"challenge": payload["challenge"]})
        return JSONResponse(content={"error": "Unsupported Slack payload."}, status_code=400)

    fields = parse_qs(raw_body.decode("utf-8", errors="replace"))
    form = {key: values[0] for key, values in fields.items()}
    if not verify_slack_request(settings, raw_body, request.headers, form):
        return JSONResponse(content={"error": "Verification failed."}, status_code=401)

    command = form.get("command", "")
    text = form.get("text", "")
    logger.info("Slack command received", command=command, text=text)
    if text.strip() == "run":
        result = await run_in_threadpool(
            trigger_digest_run,
            settings,
            store,
            settings.default_product_id,
        )
        return JSONResponse(content=build_run_response(result))
    digest = await run_in_threadpool(get_latest_digest, store)
    return JSONResponse(content=build_command_response(command, text, digest))


app = FastAPI(
    title="Release Pilot",
    description="Daily release digests for product managers",
    version=__version__,
)
app.include_router(router)
