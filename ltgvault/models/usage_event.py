"""
ltgvault/models/usage_event.py

One immutable record of a metered action.
"""

from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict

from ltgvault.models.feature import Feature


class UsageEvent(BaseModel):
    """
    UsageEvent records a completed, allowed feature invocation.

    Actions by feature:
    - postup: generate, refine
    - threadgen: hooks, body, full_thread
    - chaptergen: generate
    - resumebuilder: bullets, summary, cover_letter
    """
    model_config = ConfigDict(frozen=True)

    account_id: str
    feature: Feature
    action: str
    occurred_at: datetime
    metadata: Optional[Dict[str, Any]] = None
