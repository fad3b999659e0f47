"""
Chat API Endpoints
==================

Streaming AI chat with Case.dev tools, chat/message persistence, and
artifacts (AI-drafted documents) with pdf/docx export.
"""

import re
import json
import logging
from datetime import datetime
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from .auth import AuthContext, require_auth, require_permission
from .casedev import CaseDevClient, get_casedev_client
from .chat import ChatAgent, ChatToolbox
from .config import get_settings
from .db import Chat, Message, Artifact, Case, ArtifactKind, get_db
from .llm import CaseLLMClient, get_llm_client
from .schemas import (
    ChatRequest, CreateChatRequest, SaveMessageRequest,
    CreateArtifactRequest, UpdateArtifactRequest, ExportArtifactRequest,
)
from .sse import sse_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

EXPORT_CONTENT_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

MAX_LISTED = 50
MAX_FILENAME_LENGTH = 50


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def export_filename(title: Optional[str], output_format: str) -> str:
    """Title stripped to [A-Za-z0-9 -], spaces to underscores, max 50 chars"""
    cleaned = re.sub(r"[^a-zA-Z0-9\s-]", "", title or "Document")
    cleaned = re.sub(r"\s+", "_", cleaned)[:MAX_FILENAME_LENGTH]
    return f"{cleaned}.{output_format}"


def chat_to_dict(chat: Chat, case_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": chat.id,
        "title": chat.title,
        "caseId": chat.case_id,
        "caseName": case_name,
        "createdAt": _iso(chat.created_at),
        "updatedAt": _iso(chat.updated_at),
    }


def message_to_ui(message: Message) -> Dict[str, Any]:
    """Stored JSON content -> {id, role, content, parts}"""
    try:
        parsed = json.loads(message.content)
    except (TypeError, ValueError):
        parsed = {"text": message.content}

    if isinstance(parsed, dict):
        text = parsed.get("text") or ""
        parts = parsed.get("parts") or [parsed]
    elif isinstance(parsed, list):
        text = "".join(p.get("text", "") for p in parsed if isinstance(p, dict))
        parts = parsed
    else:
        text = str(parsed)
        parts = []

    return {
        "id": message.id,
        "role": message.role,
        "content": text,
        "parts": parts if isinstance(parts, list) else [],
        "createdAt": _iso(message.created_at),
    }


def artifact_to_dict(artifact: Artifact) -> Dict[str, Any]:
    return {
        "id": artifact.id,
        "userId": artifact.user_id,
        "chatId": artifact.chat_id,
        "caseId": artifact.case_id,
        "title": artifact.title,
        "content": artifact.content,
        "kind": artifact.kind,
        "version": artifact.version,
        "createdAt": _iso(artifact.created_at),
        "updatedAt": _iso(artifact.updated_at),
    }


def _own_chat(db: Session, auth: AuthContext, chat_id: str) -> Chat:
    chat = db.query(Chat).filter(Chat.id == chat_id, Chat.user_id == auth.user_id).first()
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


# =============================================================================
# STREAMING CHAT
# =============================================================================

@router.post("/chat")
async def chat(
    request: ChatRequest,
    auth: AuthContext = Depends(require_permission("chat_ai.use")),
    client: CaseDevClient = Depends(get_casedev_client),
    llm: CaseLLMClient = Depends(get_llm_client),
):
    """One chat turn, streamed as SSE (text / tool-call / tool-result / finish)"""
    settings = get_settings()

    model = settings.chat_model
    if request.model and request.model != model:
        if auth.has_permission("chat_ai.change_model"):
            model = request.model
        else:
            logger.info(f"User {auth.user_id} may not change model; using {model}")

    temperature, max_tokens, top_p = 1, 4096, 1
    if auth.has_permission("chat_ai.change_settings"):
        temperature = request.temperature if request.temperature is not None else temperature
        max_tokens = request.max_tokens or max_tokens
        top_p = request.top_p if request.top_p is not None else top_p

    toolbox = ChatToolbox(
        client,
        user_id=auth.user_id,
        selected_vaults=request.selected_vaults,
        doc_vault_id=request.vault_id,
        chat_id=request.chat_id,
        case_id=request.case_id,
        enabled_tools=request.enabled_tools,
        llm=llm,
    )
    agent = ChatAgent(llm, toolbox, model=model, temperature=temperature, max_tokens=max_tokens, top_p=top_p)

    logger.info(f"Chat request from {auth.user_id}: model={model}, vaults={len(request.selected_vaults)}")
    return sse_response(agent.run(request.messages, system_prompt=request.system_prompt))


# =============================================================================
# CHATS & MESSAGES
# =============================================================================

@router.get("/chats")
async def list_chats(
    case_id: Optional[str] = Query(None, alias="caseId"),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    query = (
        db.query(Chat, Case.title)
        .outerjoin(Case, Case.id == Chat.case_id)
        .filter(Chat.user_id == auth.user_id)
    )
    if case_id:
        query = query.filter(Chat.case_id == case_id)

    rows = query.order_by(Chat.updated_at.desc()).limit(MAX_LISTED).all()
    return [chat_to_dict(chat, case_name) for chat, case_name in rows]


@router.post("/chats")
async def upsert_chat(
    request: CreateChatRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Create a chat, or rename it when the id already exists"""
    if request.id:
        existing = db.query(Chat).filter(Chat.id == request.id, Chat.user_id == auth.user_id).first()
        if existing:
            existing.title = request.title or existing.title
            existing.updated_at = datetime.utcnow()
            db.commit()
            return chat_to_dict(existing)

    chat = Chat(user_id=auth.user_id, title=request.title or "New Chat", case_id=request.case_id)
    if request.id:
        chat.id = request.id
    db.add(chat)
    db.commit()
    return chat_to_dict(chat)


@router.delete("/chats")
async def delete_chat(
    chat_id: Optional[str] = Query(None, alias="id"),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    if not chat_id:
        raise HTTPException(status_code=400, detail="Chat ID required")

    chat = db.query(Chat).filter(Chat.id == chat_id, Chat.user_id == auth.user_id).first()
    if chat:
        db.query(Message).filter(Message.chat_id == chat_id).delete()
        db.delete(chat)
        db.commit()
    return {"success": True}


@router.get("/chats/{chat_id}/messages")
async def list_messages(
    chat_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    _own_chat(db, auth, chat_id)
    messages = (
        db.query(Message)
        .filter(Message.chat_id == chat_id)
        .order_by(Message.created_at)
        .all()
    )
    return [message_to_ui(m) for m in messages]


@router.post("/chats/{chat_id}/messages")
async def save_message(
    chat_id: str,
    request: SaveMessageRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Insert or replace a message by id"""
    if not request.id or not request.role or "content" not in request.model_fields_set:
        raise HTTPException(status_code=400, detail="Missing required fields")

    chat = _own_chat(db, auth, chat_id)
    content = request.content if isinstance(request.content, str) else json.dumps(request.content)

    message = db.query(Message).filter(Message.id == request.id).first()
    if message:
        if message.chat_id != chat_id:
            raise HTTPException(status_code=404, detail="Message not found")
        message.content = content
    else:
        message = Message(id=request.id, chat_id=chat_id, role=request.role, content=content)
        db.add(message)

    chat.updated_at = datetime.utcnow()
    db.commit()
    return {
        "id": message.id,
        "chatId": message.chat_id,
        "role": message.role,
        "content": message.content,
        "createdAt": _iso(message.created_at),
    }


# =============================================================================
# ARTIFACTS
# =============================================================================

@router.get("/artifacts")
async def get_artifacts(
    artifact_id: Optional[str] = Query(None, alias="id"),
    chat_id: Optional[str] = Query(None, alias="chatId"),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """One artifact by id, or the latest artifacts (optionally of one chat)"""
    if artifact_id:
        artifact = db.query(Artifact).filter(
            Artifact.id == artifact_id,
            Artifact.user_id == auth.user_id,
        ).first()
        if not artifact:
            raise HTTPException(status_code=404, detail="Artifact not found")
        return artifact_to_dict(artifact)

    query = db.query(Artifact).filter(Artifact.user_id == auth.user_id)
    if chat_id:
        query = query.filter(Artifact.chat_id == chat_id)
    artifacts = query.order_by(Artifact.updated_at.desc()).limit(MAX_LISTED).all()
    return [artifact_to_dict(a) for a in artifacts]


@router.post("/artifacts")
async def create_artifact(
    request: CreateArtifactRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    if not request.title:
        raise HTTPException(status_code=400, detail="Title is required")

    kind = request.kind or ArtifactKind.TEXT.value
    if kind not in [k.value for k in ArtifactKind]:
        raise HTTPException(status_code=400, detail="Invalid artifact kind")

    artifact = Artifact(
        user_id=auth.user_id,
        title=request.title,
        content=request.content or "",
        kind=kind,
        chat_id=request.chat_id,
        case_id=request.case_id,
    )
    if request.id:
        artifact.id = request.id
    db.add(artifact)
    db.commit()
    return artifact_to_dict(artifact)


@router.put("/artifacts")
async def update_artifact(
    request: UpdateArtifactRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    if not request.id:
        raise HTTPException(status_code=400, detail="Artifact ID required")

    artifact = db.query(Artifact).filter(
        Artifact.id == request.id,
        Artifact.user_id == auth.user_id,
    ).first()
    if not artifact:
        raise HTTPException(status_code=404, detail="Artifact not found")

    if request.title is not None:
        artifact.title = request.title
    if request.content is not None and request.content != artifact.content:
        artifact.content = request.content
        artifact.version = (artifact.version or 1) + 1
    if request.kind is not None:
        artifact.kind = request.kind
    artifact.updated_at = datetime.utcnow()
    db.commit()
    return artifact_to_dict(artifact)


@router.delete("/artifacts")
async def delete_artifact(
    artifact_id: Optional[str] = Query(None, alias="id"),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    if not artifact_id:
        raise HTTPException(status_code=400, detail="Artifact ID required")

    db.query(Artifact).filter(
        Artifact.id == artifact_id,
        Artifact.user_id == auth.user_id,
    ).delete()
    db.commit()
    return {"success": True}


@router.post("/artifacts/export")
async def export_artifact(
    request: ExportArtifactRequest,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
):
    """Render markdown to pdf/docx through Case.dev format"""
    if not request.content:
        raise HTTPException(status_code=400, detail="Missing required field: content")
    if request.output_format not in EXPORT_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail='Invalid format. Must be "pdf" or "docx"')

    try:
        data = await client.format_document(
            request.content,
            request.output_format,
            options={"template": "standard"},
        )
    except Exception:
        logger.exception("Artifact export failed")
        raise HTTPException(status_code=500, detail="Failed to export artifact")

    filename = export_filename(request.title, request.output_format)
    logger.info(f"Exported artifact as {filename} ({len(data)} bytes)")
    return Response(
        content=data,
        media_type=EXPORT_CONTENT_TYPES[request.output_format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
