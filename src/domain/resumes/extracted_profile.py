"""
ExtractedProfile Value Object

Structured data extracted from resume text by the LLM.

Responsibility:
    - Coerce loosely-typed LLM JSON into a stable shape
    - Clean skills (strings only, trimmed, non-empty, at most 50)

Architecture Notes:
    - Value Object (immutable)
    - Unknown keys are ignored, wrong types fall back to empty values,
      so a sloppy LLM answer never fails validation
"""

from typing import Any, Final

from pydantic import BaseModel, Field

MAX_SKILLS: Final[int] = 50


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


class ExtractedProfile(BaseModel):
    """
    Normalized extraction result.

    Examples:
        >>> profile = ExtractedProfile.from_llm_output(
        ...     {"skills": [" Python ", "", 42, "SQL"], "education": None}
        ... )
        >>> profile.skills
        ['Python', 'SQL']
        >>> profile.education
        ''
    """

    skills: list[str] = Field(default_factory=list)
    education: str = ""
    experience: str = ""
    summary: str = ""
    certifications: list[Any] = Field(default_factory=list)
    languages: list[Any] = Field(default_factory=list)
    location: str = ""
    job_titles: list[Any] = Field(default_factory=list)

    model_config = {"frozen": True}

    @classmethod
    def from_llm_output(cls, data: Any) -> "ExtractedProfile":
        """Build a profile from raw LLM JSON (any shape)."""
        if not isinstance(data, dict):
            data = {}

        skills = [
            skill.strip()
            for skill in _as_list(data.get("skills"))
            if isinstance(skill, str) and skill.strip()
        ][:MAX_SKILLS]

        return cls(
            skills=skills,
            education=_as_str(data.get("education")),
            experience=_as_str(data.get("experience")),
            summary=_as_str(data.get("summary")),
            certifications=_as_list(data.get("certifications")),
            languages=_as_list(data.get("languages")),
            location=_as_str(data.get("location")),
            job_titles=_as_list(data.get("jobTitles", data.get("job_titles"))),
        )

    def to_storage_dict(self) -> dict[str, Any]:
        """Shape persisted in `resumes.extracted_data` (camelCase keys kept for the UI)."""
        return {
            "skills": list(self.skills),
            "education": self.education,
            "experience": self.experience,
            "summary": self.summary,
            "certifications": list(self.certifications),
            "languages": list(self.languages),
            "location": self.location,
            "jobTitles": list(self.job_titles),
        }
