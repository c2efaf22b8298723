"""Call-site wiring for the two job-tracking screens.

Campaign sends use push with a polling fallback; profile searches poll only and
enrich the found profiles with emails once the search completes.
"""

from typing import Awaitable, Callable, Optional, Union

from ..api_clients.base_client import TokenProvider
from ..api_clients.jobs_client import JobsAPIClient
from ..api_clients.profiles_client import ProfilesAPIClient
from ..config import SyncConfig
from .completion import AutoEnrichEmailsHook, CompletionHook, RefreshResourceHook
from .controller import StateListener, SyncController
from .handle_store import JobHandleStore
from .notifier import Notifier
from .push_channel import ClientFactory, PushChannel

CAMPAIGN_JOB_NAMESPACE = "campaign_job"
SCRAPING_JOB_NAMESPACE = "scraping_job"
CAMPAIGN_SEND_JOB = "campaign_send"
PROFILE_SEARCH_JOB = "profile_search"


def _handle_store(config: SyncConfig, namespace: str) -> JobHandleStore:
    return JobHandleStore(
        config.storage.handle_store_path,
        namespace=namespace,
        lock_timeout_seconds=config.storage.lock_timeout,
    )


def create_campaign_send_sync(
    campaign_id: str,
    token: Union[str, TokenProvider, None],
    config: Optional[SyncConfig] = None,
    notifier: Optional[Notifier] = None,
    refresh: Optional[Callable[[str], Awaitable[None]]] = None,
    on_state_change: Optional[StateListener] = None,
    socket_client_factory: Optional[ClientFactory] = None,
    jobs_client: Optional[JobsAPIClient] = None,
) -> SyncController:
    """Build the controller tracking a campaign send.

    Status arrives over the push channel while it is connected and is polled
    otherwise. ``refresh`` is awaited once the send finishes.
    """
    config = config or SyncConfig()
    cleanups = []

    if jobs_client is None:
        jobs_client = JobsAPIClient(config.server.api_url, token, config.server)
        cleanups.append(jobs_client.close)

    push_channel = None
    if config.push.enabled:
        push_channel = PushChannel(
            config.server.resolved_socket_url(),
            config.push,
            client_factory=socket_client_factory,
        )
        cleanups.insert(0, push_channel.disconnect)

    hook: Optional[CompletionHook] = RefreshResourceHook(refresh) if refresh else None

    return SyncController(
        resource_id=campaign_id,
        job_type=CAMPAIGN_SEND_JOB,
        jobs_client=jobs_client,
        handle_store=_handle_store(config, CAMPAIGN_JOB_NAMESPACE),
        push_channel=push_channel,
        notifier=notifier,
        completion_hook=hook,
        poll_interval=config.polling.interval,
        push_token=token,
        on_state_change=on_state_change,
        cleanups=cleanups,
    )


def create_profile_search_sync(
    requirement_id: str,
    token: Union[str, TokenProvider, None],
    config: Optional[SyncConfig] = None,
    notifier: Optional[Notifier] = None,
    on_state_change: Optional[StateListener] = None,
    jobs_client: Optional[JobsAPIClient] = None,
    profiles_client: Optional[ProfilesAPIClient] = None,
) -> SyncController:
    """Build the controller tracking a profile search (poll only).

    Once the search completes, the found profiles without an email are sent for
    email enrichment.
    """
    config = config or SyncConfig()
    cleanups = []

    if jobs_client is None:
        jobs_client = JobsAPIClient(config.server.api_url, token, config.server)
        cleanups.append(jobs_client.close)
    if profiles_client is None:
        profiles_client = ProfilesAPIClient(config.server.api_url, token, config.server)
        cleanups.append(profiles_client.close)

    return SyncController(
        resource_id=requirement_id,
        job_type=PROFILE_SEARCH_JOB,
        jobs_client=jobs_client,
        handle_store=_handle_store(config, SCRAPING_JOB_NAMESPACE),
        notifier=notifier,
        completion_hook=AutoEnrichEmailsHook(
            profiles_client, settle_delay=config.completion.enrich_settle_delay
        ),
        poll_interval=config.polling.interval,
        on_state_change=on_state_change,
        cleanups=cleanups,
    )
