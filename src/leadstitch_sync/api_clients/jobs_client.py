"""
Jobs API Client for LeadStitch Server Integration.

Launches long-running backend jobs (profile searches, campaign sends) and
fetches their status snapshots.
"""

import logging
from typing import Any, Dict

from .base_client import LeadStitchAPIClient
from .exceptions import APIClientError, JobNotFoundError

logger = logging.getLogger(__name__)


class JobsAPIClient(LeadStitchAPIClient):
    """Client for job launch and status operations with the LeadStitch server."""

    async def launch_job(self, job_type: str, resource_id: str, **params: Any) -> str:
        """Launch a job for a resource.

        The request is sent once. A failure is reported to the caller, who
        decides whether launching again is safe.

        Args:
            job_type: Kind of job, e.g. "profile_search" or "campaign_send"
            resource_id: Resource (requirement, campaign) the job belongs to
            **params: Additional job parameters forwarded in the request body

        Returns:
            Server-assigned job id

        Raises:
            APIClientError: If the server rejects the launch or returns no job id
            AuthenticationError: If authentication fails
            NetworkError: If network request fails
        """
        body: Dict[str, Any] = {"type": job_type, "resourceId": resource_id}
        body.update(params)

        # Not retried: a timed out POST may already have started the job.
        response = await self._request("POST", "/jobs", json=body)
        data = self._json_body(response, "job launch")

        job_id = None
        if isinstance(data, dict):
            job_id = data.get("jobId") or data.get("job_id")
        if not job_id:
            raise APIClientError(
                "Job launch response did not contain a job id", response.status_code, data
            )

        logger.info(f"Launched {job_type} job {job_id} for resource {resource_id}")
        return str(job_id)

    async def get_job_status(self, job_id: str) -> Dict[str, Any]:
        """Get the raw status payload of a job.

        Args:
            job_id: Job ID to get status for

        Returns:
            Job status data from server

        Raises:
            JobNotFoundError: If the server no longer knows the job (404)
            APIClientError: If API request fails
            AuthenticationError: If authentication fails
            NetworkError: If network request fails
        """
        try:
            response = await self._request("GET", f"/jobs/{job_id}/status")
        except APIClientError as e:
            if e.status_code == 404:
                raise JobNotFoundError(job_id, payload=e.payload)
            raise

        data = self._json_body(response, "job status")
        if not isinstance(data, dict):
            raise APIClientError(
                f"Invalid job status response type: {type(data).__name__}",
                response.status_code,
            )
        return dict(data)
