"""Tests for the poll channel."""

import asyncio

import pytest

from leadstitch_sync.api_clients.exceptions import JobNotFoundError, ServerError
from leadstitch_sync.sync.models import JobStatus
from leadstitch_sync.sync.poll_channel import PollChannel


class Recorder:
    """Collects callbacks from a poll loop."""

    def __init__(self):
        self.snapshots = []
        self.errors = []
        self.not_found = []

    def start(self, channel, job_id="job-1", interval=0.01):
        return channel.start(
            job_id,
            interval,
            on_snapshot=self.snapshots.append,
            on_error=self.errors.append,
            on_not_found=self.not_found.append,
        )


class TestPollChannel:
    """Interval fetching, error handling and stop semantics."""

    async def test_fetches_immediately(self, jobs_client, wait_for):
        """The first fetch happens without waiting for the interval."""
        jobs_client.statuses["job-1"] = [{"status": "running", "jobId": "job-1"}]
        channel = PollChannel(jobs_client.get_job_status)
        recorder = Recorder()

        subscription = recorder.start(channel, interval=10)
        await wait_for(lambda: recorder.snapshots)
        subscription.stop()

        assert recorder.snapshots[0].status == JobStatus.RUNNING
        assert jobs_client.status_calls == ["job-1"]

    async def test_errors_do_not_stop_polling(self, jobs_client, wait_for):
        jobs_client.statuses["job-1"] = [
            ServerError("Server is experiencing issues", status_code=503),
            {"status": "running"},
        ]
        channel = PollChannel(jobs_client.get_job_status)
        recorder = Recorder()

        subscription = recorder.start(channel)
        await wait_for(lambda: recorder.snapshots)
        subscription.stop()

        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], ServerError)

    async def test_not_found_stops_loop(self, jobs_client, wait_for):
        """A 404 ends polling and reports through on_not_found, not on_error."""
        channel = PollChannel(jobs_client.get_job_status)
        recorder = Recorder()

        recorder.start(channel, job_id="gone")
        await wait_for(lambda: recorder.not_found)
        await asyncio.sleep(0.05)

        assert recorder.not_found == ["gone"]
        assert recorder.errors == []
        assert not channel.is_polling
        assert jobs_client.status_calls == ["gone"]

    async def test_stop_is_idempotent(self, jobs_client, wait_for):
        jobs_client.statuses["job-1"] = [{"status": "running"}]
        channel = PollChannel(jobs_client.get_job_status)
        recorder = Recorder()

        subscription = recorder.start(channel)
        await wait_for(lambda: recorder.snapshots)
        subscription.stop()
        subscription.stop()
        channel.stop()

        calls = len(jobs_client.status_calls)
        await asyncio.sleep(0.05)
        assert len(jobs_client.status_calls) == calls
        assert not channel.is_polling

    async def test_response_after_stop_is_discarded(self):
        """A fetch that resolves after stop() never reaches the handler."""
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_fetch(job_id):
            started.set()
            await release.wait()
            return {"status": "completed"}

        channel = PollChannel(slow_fetch)
        recorder = Recorder()
        subscription = recorder.start(channel)
        await started.wait()

        subscription.stop()
        release.set()
        await asyncio.sleep(0.02)

        assert recorder.snapshots == []

    async def test_tick_skipped_while_fetch_in_flight(self):
        """Overlapping ticks do not start a second concurrent fetch."""
        release = asyncio.Event()
        calls = []

        async def slow_fetch(job_id):
            calls.append(job_id)
            await release.wait()
            return {"status": "running"}

        channel = PollChannel(slow_fetch)
        recorder = Recorder()
        subscription = recorder.start(channel, interval=0.005)
        await asyncio.sleep(0.05)

        assert calls == ["job-1"]
        release.set()
        subscription.stop()

    async def test_restart_replaces_previous_loop(self, jobs_client, wait_for):
        jobs_client.statuses["job-1"] = [{"status": "running"}]
        jobs_client.statuses["job-2"] = [{"status": "running"}]
        channel = PollChannel(jobs_client.get_job_status)
        first, second = Recorder(), Recorder()

        first.start(channel, job_id="job-1")
        await wait_for(lambda: first.snapshots)
        subscription = second.start(channel, job_id="job-2")
        seen = len(first.snapshots)
        await wait_for(lambda: len(second.snapshots) >= 2)
        subscription.stop()

        assert len(first.snapshots) == seen

    async def test_interval_must_be_positive(self, jobs_client):
        channel = PollChannel(jobs_client.get_job_status)
        with pytest.raises(ValueError):
            Recorder().start(channel, interval=0)
