"""Resume Builder routes: status, resumes, job applications, cover letters, metered AI.

Every record route is scoped to the calling account; another account's id is a 404.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ltgvault.api.deps import require_account
from ltgvault.api.metered import run_metered
from ltgvault.core.errors import ValidationError
from ltgvault.features.ai import service as ai_service
from ltgvault.features.ai.client import LLMClient, get_llm_client
from ltgvault.features.resumes import service as resume_service
from ltgvault.models.account import Account
from ltgvault.models.feature import Feature


router = APIRouter(prefix="/api/resume", tags=["resume"])


class CreateResumeRequest(BaseModel):
    title: Optional[str] = None
    template: str = "clean"
    content: Optional[Dict[str, Any]] = None


class UpdateResumeRequest(BaseModel):
    title: Optional[str] = None
    template: Optional[str] = None
    content: Optional[Dict[str, Any]] = None


class CreateJobRequest(BaseModel):
    company: str
    role: str
    status: str = "applied"


class UpdateJobRequest(BaseModel):
    company: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class CoverLetterRequest(BaseModel):
    resumeId: Optional[str] = None
    jobTitle: Optional[str] = None
    company: Optional[str] = None
    jobDescription: Optional[str] = None
    content: Optional[str] = None


class GenerateRequest(BaseModel):
    action: str
    content: Optional[str] = None
    context: Optional[Dict[str, str]] = None


@router.get("/status")
def status(account: Account = Depends(require_account)):
    return resume_service.resume_status(account)


@router.get("/list")
def list_resumes(account: Account = Depends(require_account)):
    return {"resumes": [resume.model_dump(mode="json") for resume in resume_service.list_resumes(account.id)]}


@router.post("/create", status_code=201)
def create_resume(body: CreateResumeRequest, account: Account = Depends(require_account)):
    resume = resume_service.create_resume(account, title=body.title, template=body.template, content=body.content)
    return {"resume": resume.model_dump(mode="json")}


@router.get("/jobs")
def list_jobs(account: Account = Depends(require_account)):
    return {"jobs": [job.model_dump(mode="json") for job in resume_service.list_jobs(account.id)]}


@router.post("/jobs", status_code=201)
def create_job(body: CreateJobRequest, account: Account = Depends(require_account)):
    job = resume_service.create_job(account, company=body.company, role=body.role, status=body.status)
    return {"job": job.model_dump(mode="json")}


@router.put("/jobs/{job_id}")
def update_job(job_id: str, body: UpdateJobRequest, account: Account = Depends(require_account)):
    job = resume_service.update_job(
        account.id, job_id, company=body.company, role=body.role, status=body.status, notes=body.notes
    )
    return {"job": job.model_dump(mode="json")}


@router.delete("/jobs/{job_id}")
def delete_job(job_id: str, account: Account = Depends(require_account)):
    resume_service.delete_job(account.id, job_id)
    return {"success": True}


@router.get("/cover-letters")
def list_cover_letters(account: Account = Depends(require_account)):
    letters = resume_service.list_cover_letters(account.id)
    return {"coverLetters": [letter.model_dump(mode="json") for letter in letters]}


@router.post("/cover-letters", status_code=201)
def create_cover_letter(body: CoverLetterRequest, account: Account = Depends(require_account)):
    letter = resume_service.create_cover_letter(
        account.id,
        resume_id=body.resumeId,
        job_title=body.jobTitle or "",
        company=body.company or "",
        job_description=body.jobDescription or "",
        content=body.content or "",
    )
    return {"coverLetter": letter.model_dump(mode="json")}


@router.get("/cover-letters/{letter_id}")
def get_cover_letter(letter_id: str, account: Account = Depends(require_account)):
    return {"coverLetter": resume_service.get_cover_letter(account.id, letter_id).model_dump(mode="json")}


@router.put("/cover-letters/{letter_id}")
def update_cover_letter(letter_id: str, body: CoverLetterRequest, account: Account = Depends(require_account)):
    letter = resume_service.update_cover_letter(
        account.id,
        letter_id,
        job_title=body.jobTitle,
        company=body.company,
        job_description=body.jobDescription,
        content=body.content,
    )
    return {"coverLetter": letter.model_dump(mode="json")}


@router.delete("/cover-letters/{letter_id}")
def delete_cover_letter(letter_id: str, account: Account = Depends(require_account)):
    resume_service.delete_cover_letter(account.id, letter_id)
    return {"success": True}


@router.post("/generate")
async def generate(
    body: GenerateRequest,
    request: Request,
    account: Account = Depends(require_account),
    client: LLMClient = Depends(get_llm_client),
):
    if body.action not in ai_service.RESUME_ACTIONS:
        raise ValidationError(f"Invalid action. Use one of: {', '.join(ai_service.RESUME_ACTIONS)}")
    content = ai_service.validate_content(body.content)

    async def work():
        return await ai_service.generate_resume_text(client, body.action, content, body.context)

    return await run_metered(account, Feature.RESUMEBUILDER, work, path=request.url.path)


# Registered last so the static paths above win over the id match.
@router.get("/{resume_id}")
def get_resume(resume_id: str, account: Account = Depends(require_account)):
    return {"resume": resume_service.get_resume(account.id, resume_id).model_dump(mode="json")}


@router.put("/{resume_id}")
def update_resume(resume_id: str, body: UpdateResumeRequest, account: Account = Depends(require_account)):
    resume = resume_service.update_resume(
        account, resume_id, title=body.title, template=body.template, content=body.content
    )
    return {"resume": resume.model_dump(mode="json")}


@router.delete("/{resume_id}")
def delete_resume(resume_id: str, account: Account = Depends(require_account)):
    resume_service.delete_resume(account.id, resume_id)
    return {"success": True}
