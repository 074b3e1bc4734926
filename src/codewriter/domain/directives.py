from __future__ import annotations

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, model_validator


class DirectiveKind(str, Enum):
    CREATE_FOLDER = "create_folder"
    CREATE_FILE = "create_file"
    RUN_SCRIPT = "run_script"


DirectiveStatus = Literal["pending", "completed"]


class Directive(BaseModel):
    """One step parsed from a tagged action stream.

    ``title`` is the display label; ``path`` is only set for file creation and
    ``content`` holds the file body or the shell command.
    """

    id: int
    kind: DirectiveKind
    title: str
    path: Optional[str] = None
    content: Optional[str] = None
    status: DirectiveStatus = "pending"


class FileTreeNode(BaseModel):
    name: str
    path: str
    type: Literal["file", "folder"]
    content: Optional[str] = None
    children: Optional[List["FileTreeNode"]] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "FileTreeNode":
        if self.type == "folder":
            if self.content is not None:
                raise ValueError("folder nodes carry no content")
            if self.children is None:
                self.children = []
        else:
            if self.children is not None:
                raise ValueError("file nodes carry no children")
            if self.content is None:
                self.content = ""
        return self


FileTreeNode.model_rebuild()


def folder_node(name: str, path: str) -> FileTreeNode:
    return FileTreeNode(name=name, path=path, type="folder", children=[])


def file_node(name: str, path: str, content: str) -> FileTreeNode:
    return FileTreeNode(name=name, path=path, type="file", content=content)


__all__ = [
    "Directive",
    "DirectiveKind",
    "DirectiveStatus",
    "FileTreeNode",
    "file_node",
    "folder_node",
]
