from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict


class Resume(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    title: str
    template: str
    content: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class JobApplication(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    company: str
    role: str
    status: str = "applied"
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class CoverLetter(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    resume_id: Optional[str] = None
    job_title: str = ""
    company: str = ""
    job_description: str = ""
    content: str = ""
    created_at: datetime
    updated_at: datetime
