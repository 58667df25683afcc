"""
Resume Builder storage.
- create_resume / list_resumes / get_resume / update_resume / delete_resume
- create_job / list_jobs / update_job / delete_job
- cover letters: create, list, get, update, delete (not capped)
- resume_status(account): Pro flag, caps and AI usage for the status page
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import delete, insert, select, update

from ltgvault.core.database import (
    as_utc,
    cover_letters,
    get_db_session,
    job_applications,
    resumes,
    utcnow,
)
from ltgvault.core.errors import NotFoundError, ValidationError
from ltgvault.features.entitlements.gating import (
    Resource,
    allowed_templates,
    check_resource,
    require_resource,
    require_template,
)
from ltgvault.features.entitlements.service import evaluate
from ltgvault.features.entitlements.policy import Tier
from ltgvault.models.account import Account
from ltgvault.models.feature import Feature
from ltgvault.models.resume import CoverLetter, JobApplication, Resume


def _row_to_resume(row) -> Resume:
    return Resume(
        id=row.id,
        account_id=row.account_id,
        title=row.title,
        template=row.template,
        content=row.content,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _row_to_job(row) -> JobApplication:
    return JobApplication(
        id=row.id,
        account_id=row.account_id,
        company=row.company,
        role=row.role,
        status=row.status,
        notes=row.notes,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at) if row.updated_at else None,
    )


def create_resume(
    account: Account,
    title: Optional[str] = None,
    template: str = "clean",
    content: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Resume:
    """Create a resume after the template gate and the resume cap."""
    template_name = require_template(account, template)
    require_resource(account, Resource.RESUMES)

    created = now or utcnow()
    resume_id = str(uuid.uuid4())
    with get_db_session() as session:
        session.execute(
            insert(resumes).values(
                id=resume_id,
                account_id=account.id,
                title=(title or "").strip() or "Untitled Resume",
                template=template_name,
                content=content,
                created_at=created,
                updated_at=created,
            )
        )
        row = session.execute(select(resumes).where(resumes.c.id == resume_id)).first()
        return _row_to_resume(row)


def list_resumes(account_id: str) -> List[Resume]:
    with get_db_session() as session:
        rows = session.execute(
            select(resumes).where(resumes.c.account_id == account_id).order_by(resumes.c.created_at.desc())
        ).all()
        return [_row_to_resume(row) for row in rows]


def _owned_row(session, table, record_id: str, account_id: str, label: str):
    row = session.execute(
        select(table).where(table.c.id == record_id, table.c.account_id == account_id)
    ).first()
    if row is None:
        raise NotFoundError(f"{label} not found")
    return row


def get_resume(account_id: str, resume_id: str) -> Resume:
    with get_db_session() as session:
        return _row_to_resume(_owned_row(session, resumes, resume_id, account_id, "Resume"))


def update_resume(
    account: Account,
    resume_id: str,
    title: Optional[str] = None,
    template: Optional[str] = None,
    content: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Resume:
    """Update the fields given. A template change goes through the template gate."""
    get_resume(account.id, resume_id)
    values: Dict[str, Any] = {"updated_at": now or utcnow()}
    if title is not None:
        values["title"] = title.strip() or "Untitled Resume"
    if template is not None:
        values["template"] = require_template(account, template)
    if content is not None:
        values["content"] = content

    with get_db_session() as session:
        _owned_row(session, resumes, resume_id, account.id, "Resume")
        session.execute(update(resumes).where(resumes.c.id == resume_id).values(**values))
        row = session.execute(select(resumes).where(resumes.c.id == resume_id)).first()
        return _row_to_resume(row)


def delete_resume(account_id: str, resume_id: str) -> None:
    """Delete a resume. Cover letters that pointed at it keep their text and lose the link."""
    with get_db_session() as session:
        _owned_row(session, resumes, resume_id, account_id, "Resume")
        session.execute(
            update(cover_letters).where(cover_letters.c.resume_id == resume_id).values(resume_id=None)
        )
        session.execute(delete(resumes).where(resumes.c.id == resume_id))


def create_job(
    account: Account,
    company: str,
    role: str,
    status: str = "applied",
    now: Optional[datetime] = None,
) -> JobApplication:
    company = (company or "").strip()
    role = (role or "").strip()
    if not company or not role:
        raise ValidationError("company and role are required")
    require_resource(account, Resource.JOBS)

    job_id = str(uuid.uuid4())
    with get_db_session() as session:
        session.execute(
            insert(job_applications).values(
                id=job_id,
                account_id=account.id,
                company=company,
                role=role,
                status=status or "applied",
                created_at=now or utcnow(),
            )
        )
        row = session.execute(select(job_applications).where(job_applications.c.id == job_id)).first()
        return _row_to_job(row)


def list_jobs(account_id: str) -> List[JobApplication]:
    with get_db_session() as session:
        rows = session.execute(
            select(job_applications)
            .where(job_applications.c.account_id == account_id)
            .order_by(job_applications.c.created_at.desc())
        ).all()
        return [_row_to_job(row) for row in rows]


def update_job(
    account_id: str,
    job_id: str,
    company: Optional[str] = None,
    role: Optional[str] = None,
    status: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> JobApplication:
    values: Dict[str, Any] = {"updated_at": now or utcnow()}
    for field, value in (("company", company), ("role", role)):
        if value is None:
            continue
        if not value.strip():
            raise ValidationError(f"{field} cannot be empty")
        values[field] = value.strip()
    if status is not None:
        values["status"] = status.strip() or "applied"
    if notes is not None:
        values["notes"] = notes

    with get_db_session() as session:
        _owned_row(session, job_applications, job_id, account_id, "Job")
        session.execute(update(job_applications).where(job_applications.c.id == job_id).values(**values))
        row = session.execute(select(job_applications).where(job_applications.c.id == job_id)).first()
        return _row_to_job(row)


def delete_job(account_id: str, job_id: str) -> None:
    with get_db_session() as session:
        _owned_row(session, job_applications, job_id, account_id, "Job")
        session.execute(delete(job_applications).where(job_applications.c.id == job_id))


def _row_to_cover_letter(row) -> CoverLetter:
    return CoverLetter(
        id=row.id,
        account_id=row.account_id,
        resume_id=row.resume_id,
        job_title=row.job_title,
        company=row.company,
        job_description=row.job_description,
        content=row.content,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def create_cover_letter(
    account_id: str,
    resume_id: Optional[str] = None,
    job_title: str = "",
    company: str = "",
    job_description: str = "",
    content: str = "",
    now: Optional[datetime] = None,
) -> CoverLetter:
    """Save a cover letter. A linked resume must belong to the same account."""
    created = now or utcnow()
    letter_id = str(uuid.uuid4())
    with get_db_session() as session:
        if resume_id:
            _owned_row(session, resumes, resume_id, account_id, "Resume")
        session.execute(
            insert(cover_letters).values(
                id=letter_id,
                account_id=account_id,
                resume_id=resume_id or None,
                job_title=job_title or "",
                company=company or "",
                job_description=job_description or "",
                content=content or "",
                created_at=created,
                updated_at=created,
            )
        )
        row = session.execute(select(cover_letters).where(cover_letters.c.id == letter_id)).first()
        return _row_to_cover_letter(row)


def list_cover_letters(account_id: str) -> List[CoverLetter]:
    with get_db_session() as session:
        rows = session.execute(
            select(cover_letters)
            .where(cover_letters.c.account_id == account_id)
            .order_by(cover_letters.c.updated_at.desc())
        ).all()
        return [_row_to_cover_letter(row) for row in rows]


def get_cover_letter(account_id: str, letter_id: str) -> CoverLetter:
    with get_db_session() as session:
        return _row_to_cover_letter(_owned_row(session, cover_letters, letter_id, account_id, "Cover letter"))


def update_cover_letter(
    account_id: str,
    letter_id: str,
    job_title: Optional[str] = None,
    company: Optional[str] = None,
    job_description: Optional[str] = None,
    content: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CoverLetter:
    values: Dict[str, Any] = {"updated_at": now or utcnow()}
    for field, value in (
        ("job_title", job_title),
        ("company", company),
        ("job_description", job_description),
        ("content", content),
    ):
        if value is not None:
            values[field] = value

    with get_db_session() as session:
        _owned_row(session, cover_letters, letter_id, account_id, "Cover letter")
        session.execute(update(cover_letters).where(cover_letters.c.id == letter_id).values(**values))
        row = session.execute(select(cover_letters).where(cover_letters.c.id == letter_id)).first()
        return _row_to_cover_letter(row)


def delete_cover_letter(account_id: str, letter_id: str) -> None:
    with get_db_session() as session:
        _owned_row(session, cover_letters, letter_id, account_id, "Cover letter")
        session.execute(delete(cover_letters).where(cover_letters.c.id == letter_id))


def resume_status(account: Account, now: Optional[datetime] = None) -> Dict[str, Any]:
    resume_decision = check_resource(account, Resource.RESUMES)
    job_decision = check_resource(account, Resource.JOBS)
    ai = evaluate(account, Feature.RESUMEBUILDER, now=now)
    return {
        "isPro": ai.tier is Tier.PAID,
        "usage": {
            "resumes": resume_decision.current,
            "jobs": job_decision.current,
            "aiGenerations": ai.used,
        },
        "limits": {
            "resumes": resume_decision.limit,
            "jobs": job_decision.limit,
            "aiGenerations": ai.limit,
            "aiWindow": ai.window.value,
            "templates": list(allowed_templates(account)),
        },
        "canCreateResume": resume_decision.allowed,
        "canCreateJob": job_decision.allowed,
        "aiRemaining": ai.remaining,
    }
