"""
Resumes Subdomain Module

Resume processing state machine and LLM extraction normalization.
"""

from src.domain.resumes.extracted_profile import MAX_SKILLS, ExtractedProfile
from src.domain.resumes.resume_status import ResumeProcessingStatus

__all__ = ["MAX_SKILLS", "ExtractedProfile", "ResumeProcessingStatus"]
