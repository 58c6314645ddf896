from .models import ChatSession, MemorySource  # noqa: F401
from .repositories import (  # noqa: F401
    ChatMemorySourceRepository,
    ChatSessionRepository,
    Repository,
    build_chat_repositories,
)
from .storage import EntityNotFoundError, FileSystemContext, VolatileContext  # noqa: F401

__all__ = [
    "ChatMemorySourceRepository",
    "ChatSession",
    "ChatSessionRepository",
    "EntityNotFoundError",
    "FileSystemContext",
    "MemorySource",
    "Repository",
    "VolatileContext",
    "build_chat_repositories",
]
