from __future__ import annotations

import io
import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse

from ...core.directives import parse_directives
from ...domain.models import (
    ContinueRequest,
    TemplateRequest,
    TemplateResponse,
    TreeDownloadRequest,
    TurnRequest,
    TurnResponse,
)
from ...infrastructure.session_store import get_session_store
from ...services.generation import GenerationError, resolve_generator
from ...services.packaging import archive_tree
from ...services.prompts import CONTINUE_PROMPT, REACT_TEMPLATE_ARTIFACT, template_prompts, ui_prompts
from ...services.streaming import SSE_HEADERS, iter_as_async, sse_frame
from ...services.turns import BUILDER_FLOW, TurnOrchestrator


LOG = logging.getLogger("codewriter.api")

router = APIRouter(prefix="/builder", tags=["builder"])


def _orchestrator() -> TurnOrchestrator:
    return TurnOrchestrator(BUILDER_FLOW, store=get_session_store(), generator_factory=resolve_generator)


def _blocking_turn(payload: TurnRequest) -> TurnResponse:
    try:
        result = _orchestrator().run(payload)
    except GenerationError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return TurnResponse(
        message="Project updated successfully",
        session_id=result.session_id,
        content=result.content,
        conversation=result.conversation,
        steps=result.steps,
    )


@router.post("/template", response_model=TemplateResponse)
def get_template(payload: TemplateRequest) -> TemplateResponse:
    """Starter prompts plus the template files the builder opens with."""
    if not payload.prompt.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prompt is required")
    return TemplateResponse(
        prompts=template_prompts(),
        ui_prompts=ui_prompts(),
        steps=parse_directives(REACT_TEMPLATE_ARTIFACT),
    )


@router.post("/chat", response_model=TurnResponse)
def builder_chat(payload: TurnRequest) -> TurnResponse:
    if not payload.instruction.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prompt is required")
    return _blocking_turn(payload)


@router.post("/continue", response_model=TurnResponse)
def builder_continue(payload: ContinueRequest) -> TurnResponse:
    """Ask the model to resume a reply that was cut off."""
    known = bool(payload.session_id and get_session_store().get(payload.session_id))
    if not known and not payload.history:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Valid messages array is required")
    turn = TurnRequest(instruction=CONTINUE_PROMPT, history=payload.history, session_id=payload.session_id)
    return _blocking_turn(turn)


@router.post("/stream", response_class=StreamingResponse)
async def builder_stream(payload: TurnRequest):
    if not payload.instruction.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prompt is required")
    orchestrator = _orchestrator()

    async def event_stream():
        async for event in iter_as_async(orchestrator.stream(payload)):
            yield sse_frame(event)

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/download")
def builder_download(payload: TreeDownloadRequest) -> StreamingResponse:
    try:
        blob = archive_tree(payload.tree)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    LOG.info("tree_downloaded", extra={"roots": len(payload.tree)})
    headers = {"Content-Disposition": "attachment; filename=project.zip"}
    return StreamingResponse(io.BytesIO(blob), media_type="application/zip", headers=headers)
