"""Pydantic request models for the Dextra API."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    conversation_id: str = Field(min_length=1)
    message: Optional[Dict[str, Any]] = None


class ActionUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    frequency: Optional[int] = Field(default=None, ge=0)
    max_executions: Optional[int] = Field(default=None, ge=0)
