from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .directives import Directive, FileTreeNode


Role = Literal["user", "assistant"]


class ConversationTurn(BaseModel):
    role: Role
    content: str


class Session(BaseModel):
    session_id: str
    history: List[ConversationTurn] = Field(default_factory=list)
    created_at: float


class TurnRequest(BaseModel):
    """Body of a generate / continue / stream call."""

    model_config = ConfigDict(populate_by_name=True)

    instruction: str = Field(min_length=1)
    history: List[ConversationTurn] = Field(default_factory=list)
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ContinueRequest(BaseModel):
    """Body of a builder continue call; the instruction is implied."""

    model_config = ConfigDict(populate_by_name=True)

    history: List[ConversationTurn] = Field(default_factory=list)
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class TurnResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    session_id: str = Field(alias="sessionId")
    content: str
    conversation: List[ConversationTurn]
    files: Optional[Dict[str, str]] = None
    steps: Optional[List[Directive]] = None


class ArtifactDownloadRequest(BaseModel):
    files: Dict[str, str]


class TreeDownloadRequest(BaseModel):
    tree: List[FileTreeNode]


class TemplateRequest(BaseModel):
    prompt: str = Field(min_length=1)


class TemplateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompts: List[str]
    ui_prompts: List[str] = Field(alias="uiPrompts")
    steps: List[Directive] = Field(default_factory=list)
