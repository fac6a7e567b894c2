"""
Tests for ExtractedProfile normalization of LLM output.
"""

from src.domain.resumes import MAX_SKILLS, ExtractedProfile


def test_skills_are_trimmed_and_filtered():
    profile = ExtractedProfile.from_llm_output(
        {"skills": [" Python ", "", "   ", 42, None, "SQL"]}
    )

    assert profile.skills == ["Python", "SQL"]


def test_skills_capped():
    profile = ExtractedProfile.from_llm_output(
        {"skills": [f"skill-{i}" for i in range(MAX_SKILLS + 10)]}
    )

    assert len(profile.skills) == MAX_SKILLS
    assert profile.skills[-1] == f"skill-{MAX_SKILLS - 1}"


def test_wrong_types_fall_back_to_empty_values():
    profile = ExtractedProfile.from_llm_output(
        {"skills": "Python", "education": None, "languages": "English", "summary": 3}
    )

    assert profile.skills == []
    assert profile.education == ""
    assert profile.languages == []
    assert profile.summary == ""


def test_non_dict_output_gives_empty_profile():
    assert ExtractedProfile.from_llm_output(["Python"]) == ExtractedProfile()


def test_storage_dict_uses_camel_case_job_titles():
    profile = ExtractedProfile.from_llm_output(
        {"skills": ["Go"], "jobTitles": ["Backend Engineer"], "location": "Berlin"}
    )

    stored = profile.to_storage_dict()

    assert stored["jobTitles"] == ["Backend Engineer"]
    assert stored["location"] == "Berlin"
    assert stored["skills"] == ["Go"]
