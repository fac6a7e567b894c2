"""
Analytics Report Handler (queue: analytics, job: generate-report)

Runs the aggregation for a report type over a date range and stores the
report row.

Business Rules:
    - report_type in {user-growth, skill-trends, job-performance}
    - Any other report_type fails permanently (UnknownReportTypeError)
    - skill-trends: top 20 skills, the first 10 highlighted as topSkills
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.application.ports.external_services import CacheProtocol
from src.application.ports.repositories import AnalyticsRepositoryProtocol
from src.application.tasks.context import JobContext
from src.domain.shared.exceptions import UnknownReportTypeError

REPORT_TYPES = ("user-growth", "skill-trends", "job-performance")


class DateRange(BaseModel):
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("date_range.end must not be before date_range.start")
        return self


class GenerateReportPayload(BaseModel):
    """Payload of generate-report jobs (report_type checked by the handler)."""

    report_type: str = Field(..., min_length=1)
    date_range: DateRange

    model_config = ConfigDict(extra="ignore")


class AnalyticsReportHandler:
    """Handler for generate-report jobs."""

    def __init__(
        self,
        analytics: AnalyticsRepositoryProtocol,
        cache: Optional[CacheProtocol] = None,
    ) -> None:
        self._analytics = analytics
        self._cache = cache

    async def __call__(self, payload: Any, ctx: JobContext) -> dict[str, Any]:
        data = GenerateReportPayload.model_validate(payload)
        ctx.progress(10)

        report = await self._build(data.report_type, data.date_range)
        ctx.progress(80)

        await self._analytics.save_report(
            data.report_type, data.date_range.model_dump(mode="json"), report
        )
        if self._cache is not None:
            await self._cache.invalidate(f"analytics:{data.report_type}")
        ctx.progress(100)

        ctx.log("report generated", report_type=data.report_type)
        rows = report["data"]
        return {
            "report_type": data.report_type,
            "data_points": len(rows) if isinstance(rows, list) else 1,
        }

    async def _build(self, report_type: str, date_range: DateRange) -> dict[str, Any]:
        start, end = date_range.start, date_range.end

        if report_type == "user-growth":
            rows = await self._analytics.user_growth(start, end)
            return {
                "type": report_type,
                "data": rows,
                "totalUsers": sum(int(row["new_users"]) for row in rows),
            }

        if report_type == "skill-trends":
            rows = await self._analytics.skill_trends(start, end, limit=20)
            return {"type": report_type, "data": rows, "topSkills": rows[:10]}

        if report_type == "job-performance":
            row = await self._analytics.job_performance(start, end)
            return {
                "type": report_type,
                "data": row,
                "metrics": {
                    "totalMatches": row["total_matches"],
                    "avgMatchScore": row["avg_match_score"],
                    "applications": row["applications"],
                    "views": row["views"],
                },
            }

        raise UnknownReportTypeError(report_type)
