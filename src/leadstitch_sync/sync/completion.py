"""Completion hooks: caller actions run once when a job reaches a terminal state."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Protocol

from ..api_clients.profiles_client import ProfilesAPIClient
from .models import JobPhase, JobState

logger = logging.getLogger(__name__)


class CompletionHook(Protocol):
    async def __call__(self, resource_id: str, job_id: str, state: JobState) -> None: ...


class CompletionHookFailure(Exception):
    """A completion hook raised; logged by the hook runner, never re-raised."""

    def __init__(self, resource_id: str, job_id: str, cause: BaseException):
        self.resource_id = resource_id
        self.job_id = job_id
        self.cause = cause
        super().__init__(
            f"Completion hook for job {job_id} (resource {resource_id}) failed: {cause}"
        )


async def run_completion_hook(
    hook: CompletionHook, resource_id: str, job_id: str, state: JobState
) -> None:
    """Run a hook, logging its failure instead of propagating it."""
    try:
        await hook(resource_id, job_id, state)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        failure = CompletionHookFailure(resource_id, job_id, e)
        logger.error(str(failure), exc_info=True)


def _needs_email(profile: Dict[str, Any]) -> bool:
    profile_id = profile.get("id")
    if not isinstance(profile_id, int) or isinstance(profile_id, bool):
        return False
    email = profile.get("email")
    return not (email.strip() if isinstance(email, str) else email)


class AutoEnrichEmailsHook:
    """Request email enrichment for the profiles a completed search found.

    Profiles that already carry an email are skipped, so a restored controller
    that completes the same job twice does not enrich twice.
    """

    def __init__(self, profiles_client: ProfilesAPIClient, settle_delay: float = 2.0):
        self.profiles_client = profiles_client
        self.settle_delay = settle_delay

    async def __call__(self, resource_id: str, job_id: str, state: JobState) -> None:
        if state.phase != JobPhase.COMPLETED:
            logger.debug(f"Job {job_id} did not complete, skipping email enrichment")
            return

        # Scraped profiles are persisted asynchronously after completion.
        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)

        profiles = await self.profiles_client.list_profiles(resource_id)
        pending = [p["id"] for p in profiles if _needs_email(p)]
        if not pending:
            logger.info(f"No profiles need email enrichment for requirement {resource_id}")
            return

        logger.info(
            f"Requesting email enrichment for {len(pending)} profiles of requirement {resource_id}"
        )
        await self.profiles_client.enrich_with_emails(pending)


class RefreshResourceHook:
    """Invoke a caller-supplied refresh once a job finishes."""

    def __init__(
        self,
        refresh: Callable[[str], Awaitable[None]],
        only_on_success: bool = False,
    ):
        self.refresh = refresh
        self.only_on_success = only_on_success

    async def __call__(self, resource_id: str, job_id: str, state: JobState) -> None:
        if self.only_on_success and state.phase != JobPhase.COMPLETED:
            return
        logger.debug(f"Refreshing resource {resource_id} after job {job_id}")
        await self.refresh(resource_id)
