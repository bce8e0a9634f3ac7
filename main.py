# main.py
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
load_dotenv(override=True)

import uvicorn
from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as PydanticValidationError

import prompt
import uploads
from conversation_store import ConversationStore
from errors import BackendError, ChatError, ValidationError
from gateway import CompletionGateway
from logging_config import setup_logging
from models import (
    ChatResponse,
    ErrorBody,
    HealthStatus,
    Message,
    NewChatRequest,
    NewChatResponse,
)
from settings import Settings

# --- Settings & logging ---
settings = Settings()
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("farmer_chat")

app = FastAPI(title="Farmer Chatbot API", version="1.0.0")

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Uploaded files ---
Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

# --- Shared state, overridable via app.dependency_overrides ---
_store = ConversationStore(
    max_messages=settings.MAX_HISTORY_MESSAGES,
    max_sessions=settings.MAX_SESSIONS,
)
_gateway = CompletionGateway.from_settings(settings)


def get_settings() -> Settings:
    return settings


def get_store() -> ConversationStore:
    return _store


def get_gateway() -> CompletionGateway:
    return _gateway


def get_upload_dir() -> Path:
    return Path(settings.UPLOAD_DIR)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    if exc.status_code < 500:
        logger.warning("%s on %s: %s (%s)", type(exc).__name__, request.url.path, exc.message, exc.details)
    body = ErrorBody(error=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


@app.middleware("http")
async def no_cache(request: Request, call_next):
    response = await call_next(request)
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return response


def build_user_message(text: str, attachments) -> Message:
    parts = [text] if text else []
    parts.extend(a.annotation() for a in attachments)
    return Message(role="user", content="\n\n".join(parts), attachments=list(attachments))


@app.post("/api/chat", response_model=ChatResponse)
async def chat(
    request: Request,
    message: str = Form(""),
    sessionId: str = Form(""),
    language: str = Form("auto"),
    files: Optional[List[UploadFile]] = File(None),
    settings: Settings = Depends(get_settings),
    store: ConversationStore = Depends(get_store),
    gateway: CompletionGateway = Depends(get_gateway),
    upload_dir: Path = Depends(get_upload_dir),
):
    text = (message or "").strip()
    session_id = (sessionId or "").strip()
    files = [f for f in (files or []) if f.filename]

    if not session_id or (not text and not files):
        raise ValidationError()

    gateway.ensure_configured()

    accepted = await uploads.read_and_validate(files, settings)
    logger.info("Incoming chat: session=%s chars=%d files=%d language=%s",
                session_id, len(text), len(accepted), language)

    try:
        attachments = await uploads.store(accepted, upload_dir, str(request.base_url))
        user_message = build_user_message(text, attachments)

        async with store.lock(session_id):
            store.append(session_id, user_message)
            full_prompt = prompt.assemble(prompt.SYSTEM_INSTRUCTION, store.get(session_id))
            reply = await gateway.complete(full_prompt)

            store.append(session_id, Message(role="assistant", content=reply))
            dropped = store.prune(session_id)
            if dropped:
                logger.debug("Pruned %d old messages from session %s", dropped, session_id)
    except ChatError:
        logger.exception("Chat error for session %s", session_id)
        raise
    except Exception as e:
        logger.exception("Chat processing failed for session %s", session_id)
        raise BackendError(details=str(e)) from e

    return ChatResponse(response=reply, files=attachments, sessionId=session_id)


@app.post("/api/new-chat", response_model=NewChatResponse)
async def new_chat(request: Request, store: ConversationStore = Depends(get_store)):
    # always succeeds; a missing or malformed body just clears nothing
    try:
        req = NewChatRequest.model_validate(await request.json())
    except (ValueError, PydanticValidationError):
        req = NewChatRequest()

    if req.sessionId and store.delete(req.sessionId):
        logger.info("Cleared session %s", req.sessionId)
    return NewChatResponse()


@app.get("/api/health", response_model=HealthStatus)
def health(gateway: CompletionGateway = Depends(get_gateway)):
    return HealthStatus(geminiConfigured=gateway.configured, timestamp=datetime.now(timezone.utc))


if __name__ == "__main__":
    logger.info("Farmer Chatbot Server running on http://%s:%s", settings.HOST, settings.PORT)
    logger.info("Gemini API configured: %s (model=%s)", _gateway.configured, settings.MODEL_NAME)
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
