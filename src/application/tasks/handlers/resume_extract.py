"""
Resume Extract Handler (queue: resume-processing, job: extract-skills)

Turns an uploaded resume file into extracted text, a structured profile and
linked skills.

Responsibility:
    - Load the resume row and move it PENDING/FAILED -> PROCESSING
    - Download the file from the object store and decode its text
    - Ask the LLM for a structured profile, normalize it
    - Persist text + profile, mark COMPLETED and link skills (one transaction)
    - On terminal failure: mark FAILED and write a resume_processing_errors row

Business Rules:
    - A resume already COMPLETED short-circuits (redelivery is a no-op)
    - Missing resume row -> permanent failure
    - LLM quota exceeded -> permanent; rate limit / 5xx -> retryable
    - The FAILED status and error row are written only when the attempt is
      terminal (permanent error, last attempt, operator cancel), including
      when the handler task itself is cancelled mid-call

Progress:
    10 row loaded, 20 PROCESSING, 30 downloaded, 40 text extracted,
    70 LLM answered, 90 persisted, 100 done
"""

import asyncio
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.application.ports.external_services import (
    CacheProtocol,
    LLMClientProtocol,
    ObjectStoreProtocol,
)
from src.application.ports.repositories import ResumeRecord, ResumeRepositoryProtocol
from src.application.tasks.context import CancelReason, JobContext
from src.application.tasks.handlers.llm_json import parse_llm_json
from src.application.tasks.worker import is_retryable
from src.domain.resumes import ExtractedProfile, ResumeProcessingStatus
from src.domain.shared.exceptions import (
    DatabaseError,
    JobCancelledError,
    LLMError,
    ObjectStoreError,
    ResumeNotFoundError,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert resume parser. Extract structured information from "
    "resume text and return it as valid JSON."
)

EXTRACTION_PROMPT = """Analyze the following resume text and extract:
1. Technical skills (programming languages, frameworks, tools)
2. Soft skills (leadership, communication, etc.)
3. Education level and field
4. Years of experience
5. Job titles and roles
6. Certifications
7. Languages spoken
8. Location

Resume text: {resume_text}

Return the response as a JSON object with the following structure:
{{
  "skills": ["skill1", "skill2", ...],
  "education": "degree and field",
  "experience": "years of experience",
  "summary": "brief professional summary",
  "certifications": ["cert1", "cert2", ...],
  "languages": ["language1", "language2", ...],
  "location": "city, state/country",
  "jobTitles": ["title1", "title2", ...]
}}"""


class ExtractSkillsPayload(BaseModel):
    """Payload of extract-skills jobs."""

    resume_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


def error_type_for(error: BaseException) -> str:
    """resume_processing_errors.error_type for a failure."""
    if isinstance(error, LLMError):
        return "AI_PROCESSING_ERROR"
    if isinstance(error, ResumeNotFoundError):
        return "RESUME_NOT_FOUND"
    if isinstance(error, ObjectStoreError):
        return "STORAGE_ERROR"
    return "PROCESSING_ERROR"


class ResumeExtractHandler:
    """
    Handler for extract-skills jobs.

    Examples:
        >>> handler = ResumeExtractHandler(resumes, object_store, llm, cache)
        >>> await handler({"resume_id": "R1"}, ctx)
        {'resume_id': 'R1', 'user_id': 'U1', 'extracted_skills': 2, 'skills': ['Python', 'SQL']}
    """

    def __init__(
        self,
        resumes: ResumeRepositoryProtocol,
        object_store: ObjectStoreProtocol,
        llm: LLMClientProtocol,
        cache: Optional[CacheProtocol] = None,
    ) -> None:
        self._resumes = resumes
        self._object_store = object_store
        self._llm = llm
        self._cache = cache

    async def __call__(self, payload: Any, ctx: JobContext) -> dict[str, Any]:
        data = ExtractSkillsPayload.model_validate(payload)

        resume = await self._resumes.get_resume(data.resume_id)
        if resume is None:
            raise ResumeNotFoundError(data.resume_id)
        ctx.progress(10)

        status = ResumeProcessingStatus(resume.processing_status)
        if status == ResumeProcessingStatus.COMPLETED:
            ctx.log("resume already processed, skipping", resume_id=resume.id)
            return {"resume_id": resume.id, "user_id": resume.user_id, "skipped": True}

        status.transition_to(ResumeProcessingStatus.PROCESSING, resume.id)
        await self._resumes.mark_processing(resume.id)
        ctx.progress(20)

        try:
            profile, resume_text = await self._extract(resume, ctx)
        except asyncio.CancelledError:
            # Task cancelled after the grace window; the row must not stay PROCESSING
            if ctx.cancel_reason in (None, CancelReason.OPERATOR):
                await asyncio.shield(
                    self._record_failure(resume, JobCancelledError("Job cancelled by operator"))
                )
            raise
        except Exception as e:
            if self._is_terminal(e, ctx):
                await self._record_failure(resume, e)
            raise

        if self._cache is not None:
            await self._cache.invalidate(f"user:{resume.user_id}:skills")
        ctx.progress(100)

        ctx.log("resume processed", resume_id=resume.id, skills=len(profile.skills))
        return {
            "resume_id": resume.id,
            "user_id": resume.user_id,
            "extracted_skills": len(profile.skills),
            "skills": list(profile.skills),
        }

    async def _extract(
        self, resume: ResumeRecord, ctx: JobContext
    ) -> tuple[ExtractedProfile, str]:
        stored = await self._object_store.download(resume.file_path)
        ctx.progress(30)

        # Plain-text decode; binary formats are converted to text at upload
        resume_text = stored.data.decode("utf-8", errors="replace")
        ctx.progress(40)
        ctx.raise_if_cancelled()

        answer = await self._llm.complete(
            EXTRACTION_PROMPT.format(resume_text=resume_text),
            system=SYSTEM_PROMPT,
            temperature=0.1,
            max_tokens=2000,
        )
        profile = ExtractedProfile.from_llm_output(parse_llm_json(answer))
        ctx.progress(70)
        ctx.raise_if_cancelled()

        await self._resumes.complete_extraction(
            resume.id,
            resume.user_id,
            resume_text,
            profile.to_storage_dict(),
            list(profile.skills),
        )
        ctx.progress(90)
        return profile, resume_text

    @staticmethod
    def _is_terminal(error: BaseException, ctx: JobContext) -> bool:
        if isinstance(error, JobCancelledError):
            return ctx.cancel_reason in (None, CancelReason.OPERATOR)
        return not is_retryable(error) or ctx.is_final_attempt

    async def _record_failure(self, resume: ResumeRecord, error: BaseException) -> None:
        error_type = error_type_for(error)
        try:
            await self._resumes.mark_failed(resume.id, resume.user_id, str(error), error_type)
            logger.info(f"Resume {resume.id}: marked FAILED ({error_type})")
        except DatabaseError as e:
            logger.error(f"Resume {resume.id}: could not record failure ({error_type}): {e}")
