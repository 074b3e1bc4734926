from __future__ import annotations

import io
import logging
from typing import List

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse

from ...domain.models import ArtifactDownloadRequest, ConversationTurn, TurnRequest, TurnResponse
from ...infrastructure.session_store import get_session_store
from ...services.generation import GenerationError, resolve_generator
from ...services.packaging import archive_artifacts
from ...services.streaming import SSE_HEADERS, iter_as_async, sse_frame
from ...services.turns import WEB_FLOW, TurnOrchestrator


LOG = logging.getLogger("codewriter.api")

router = APIRouter(prefix="/codewriter", tags=["codewriter"])


def _orchestrator() -> TurnOrchestrator:
    return TurnOrchestrator(WEB_FLOW, store=get_session_store(), generator_factory=resolve_generator)


def _require_instruction(payload: TurnRequest) -> None:
    if not payload.instruction.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prompt is required")


def _blocking_turn(payload: TurnRequest, message: str) -> TurnResponse:
    try:
        result = _orchestrator().run(payload)
    except GenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return TurnResponse(
        message=message,
        session_id=result.session_id,
        content=result.content,
        conversation=result.conversation,
        files=result.files,
    )


@router.post("/generate", response_model=TurnResponse)
def generate_code(payload: TurnRequest) -> TurnResponse:
    """Start a new conversation; any session id in the body is ignored."""
    _require_instruction(payload)
    fresh = payload.model_copy(update={"session_id": None})
    return _blocking_turn(fresh, "Code generated successfully")


@router.post("/continue", response_model=TurnResponse)
def continue_code(payload: TurnRequest) -> TurnResponse:
    _require_instruction(payload)
    return _blocking_turn(payload, "Code updated successfully")


@router.post("/stream", response_class=StreamingResponse)
async def stream_code(payload: TurnRequest):
    _require_instruction(payload)
    orchestrator = _orchestrator()

    async def event_stream():
        async for event in iter_as_async(orchestrator.stream(payload)):
            yield sse_frame(event)

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/sessions/{session_id}", response_model=List[ConversationTurn])
def get_conversation(session_id: str) -> List[ConversationTurn]:
    session = get_session_store().get(session_id)
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session.history


@router.post("/download")
def download_code(payload: ArtifactDownloadRequest) -> StreamingResponse:
    try:
        blob = archive_artifacts(payload.files)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    LOG.info("artifacts_downloaded", extra={"files": sorted(payload.files)})
    headers = {"Content-Disposition": "attachment; filename=generated-code.zip"}
    return StreamingResponse(io.BytesIO(blob), media_type="application/zip", headers=headers)
