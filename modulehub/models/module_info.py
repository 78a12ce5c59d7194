"""Course module metadata models."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ModuleInfo(BaseModel):
    """Metadata for a single course module."""

    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    module_name: str
    module_duration: int
    exam_type: str
    version: int


class ModuleInfoRequest(BaseModel):
    """Validated input for creating or replacing module metadata."""

    module_name: str = Field(..., min_length=1, max_length=500)
    module_duration: int = Field(..., gt=0)
    exam_type: str = Field(..., min_length=1)
