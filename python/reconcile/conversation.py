# reconcile/conversation.py - conversation history kept alongside the session

from typing import Any, Dict, List, Optional
import time

from pydantic import BaseModel, Field


class ProjectEvolution(BaseModel):
    majorChanges: List[Any] = Field(default_factory=list)


class Context(BaseModel):
    messages: List[Any] = Field(default_factory=list)
    edits: List[Any] = Field(default_factory=list)
    projectEvolution: ProjectEvolution = Field(default_factory=ProjectEvolution)
    userPreferences: Dict[str, Any] = Field(default_factory=dict)
    currentTopic: Optional[str] = None


class ConversationStateModel(BaseModel):
    conversationId: str
    startedAt: int
    lastUpdated: int
    context: Context


def now_ms() -> int:
    return int(time.time() * 1000)


def new_conversation() -> ConversationStateModel:
    now = now_ms()
    return ConversationStateModel(
        conversationId=f"conv-{now}",
        startedAt=now,
        lastUpdated=now,
        context=Context(),
    )
