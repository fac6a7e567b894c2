"""
User/Job Match Handler (queue: job-matching, job: match-user-jobs)

Scores recent job listings against a user's skills with the LLM and stores
the good matches.

Business Rules:
    - Candidate jobs: posted within the last 30 days and listing skills
    - A job is a match when the LLM score is >= 50
    - Matches are upserted on (user_id, job_id), so redelivery is idempotent

Progress:
    10 started, 30 skills loaded, 50 jobs loaded, 50..80 scoring,
    80 scored, 100 stored
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.application.ports.external_services import CacheProtocol, LLMClientProtocol
from src.application.ports.repositories import (
    JobListingRecord,
    JobMatch,
    MatchingRepositoryProtocol,
)
from src.application.tasks.context import JobContext
from src.application.tasks.handlers.llm_json import parse_llm_json

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 50
CANDIDATE_WINDOW_DAYS = 30

SYSTEM_PROMPT = (
    "You are an expert job matching AI. Analyze skill compatibility and "
    "provide detailed matching scores."
)

MATCH_PROMPT = """Match the following user skills with job requirements and calculate a compatibility score.

User Skills: {user_skills}
Job Requirements: {job_skills}

Return a JSON object with:
{{
  "matchScore": 0-100,
  "matchedSkills": ["skill1", "skill2", ...],
  "missingSkills": ["skill1", "skill2", ...],
  "recommendations": ["suggestion1", "suggestion2", ...]
}}"""


class MatchUserJobsPayload(BaseModel):
    """Payload of match-user-jobs jobs."""

    user_id: str = Field(..., min_length=1)
    resume_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


def _score(value: Any) -> float:
    try:
        return max(0.0, min(100.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


def _strings(value: Any) -> list[str]:
    return [item for item in value if isinstance(item, str)] if isinstance(value, list) else []


class UserJobMatchHandler:
    """Handler for match-user-jobs jobs."""

    def __init__(
        self,
        matching: MatchingRepositoryProtocol,
        llm: LLMClientProtocol,
        cache: Optional[CacheProtocol] = None,
    ) -> None:
        self._matching = matching
        self._llm = llm
        self._cache = cache

    async def __call__(self, payload: Any, ctx: JobContext) -> dict[str, Any]:
        data = MatchUserJobsPayload.model_validate(payload)
        ctx.progress(10)

        user_skills = await self._matching.get_user_skill_names(data.user_id)
        ctx.progress(30)

        jobs = [
            job
            for job in await self._matching.get_recent_job_listings(CANDIDATE_WINDOW_DAYS)
            if job.skills
        ]
        ctx.progress(50)

        matches: list[JobMatch] = []
        if user_skills:
            for index, job in enumerate(jobs, start=1):
                ctx.raise_if_cancelled()
                match = await self._score_job(user_skills, job)
                if match.match_score >= MATCH_THRESHOLD:
                    matches.append(match)
                ctx.progress(50 + int(30 * index / len(jobs)))
        else:
            ctx.log("user has no skills, nothing to match", user_id=data.user_id)
        ctx.progress(80)

        written = await self._matching.upsert_matches(data.user_id, matches)
        if self._cache is not None and written:
            await self._cache.invalidate(f"user:{data.user_id}:matches")
        ctx.progress(100)

        ctx.log("matching finished", user_id=data.user_id, evaluated=len(jobs), matches=len(matches))
        return {
            "user_id": data.user_id,
            "jobs_evaluated": len(jobs) if user_skills else 0,
            "matches_found": len(matches),
        }

    async def _score_job(self, user_skills: list[str], job: JobListingRecord) -> JobMatch:
        answer = await self._llm.complete(
            MATCH_PROMPT.format(
                user_skills=", ".join(user_skills), job_skills=", ".join(job.skills)
            ),
            system=SYSTEM_PROMPT,
            temperature=0.1,
            max_tokens=1000,
        )
        result = parse_llm_json(answer)
        if not isinstance(result, dict):
            result = {}
        return JobMatch(
            job_id=job.id,
            match_score=_score(result.get("matchScore")),
            matched_skills=_strings(result.get("matchedSkills")),
            missing_skills=_strings(result.get("missingSkills")),
        )
