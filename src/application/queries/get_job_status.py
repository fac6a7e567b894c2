"""
GetJobStatusQuery - CQRS Read Query

Query object and handler for retrieving the status of one job.

Responsibility:
    - Query: Data holder with job_id to query
    - Handler: Reads the job through the dispatcher

Architecture Notes:
    - Part of Application Layer (orchestration)
    - Query is a simple DTO; the result is JobStatusView
"""

from pydantic import BaseModel, Field

from src.application.services.job_dispatcher import JobDispatcher, JobStatusView


class GetJobStatusQuery(BaseModel):
    """
    Query object containing the job id to retrieve status for.

    Attributes:
        job_id: Id returned by enqueue
    """

    job_id: str = Field(min_length=1, description="Job id returned by enqueue")

    model_config = {"frozen": True}


class GetJobStatusQueryHandler:
    """
    Handler for retrieving job status.

    Architecture:
        API Layer -> QueryHandler -> JobDispatcher -> Broker
    """

    def __init__(self, dispatcher: JobDispatcher) -> None:
        self._dispatcher = dispatcher

    async def handle(self, query: GetJobStatusQuery) -> JobStatusView:
        """
        Raises:
            JobNotFoundException: Unknown job id
            BrokerUnavailableError: Broker I/O failed
        """
        return await self._dispatcher.status(query.job_id)
