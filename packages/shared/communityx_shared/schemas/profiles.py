"""
User profile schemas. Profile metadata is free-form JSON owned by the client.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ProfileResponse(BaseModel):
    user_id: uuid.UUID
    metadata: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime


class ProfileUpsertRequest(BaseModel):
    metadata: dict[str, Any] = Field(default_factory=dict)
