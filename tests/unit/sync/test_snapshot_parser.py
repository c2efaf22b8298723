"""Tests for raw status payload normalization."""

import pytest

from leadstitch_sync.sync.models import JobStatus, StepId
from leadstitch_sync.sync.snapshot_parser import SnapshotParseError, parse_snapshot


class TestParseSnapshot:
    """parse_snapshot accepts both camelCase and snake_case payloads."""

    def test_camel_case_scraping_payload(self):
        snapshot = parse_snapshot(
            {
                "jobId": "job-9",
                "status": "processing",
                "progress": 45,
                "profilesScraped": 12,
                "currentStep": "login_success",
                "stepDetails": {"message": "Logged in to LinkedIn"},
                "loginStatus": "success",
                "loginAttempt": 1,
                "loginMaxAttempts": 3,
            }
        )
        assert snapshot.job_id == "job-9"
        assert snapshot.status == JobStatus.RUNNING
        assert snapshot.progress == 45.0
        assert snapshot.counters == {"found": 12}
        assert snapshot.step == StepId.LOGGED_IN
        assert snapshot.step_message == "Logged in to LinkedIn"
        assert snapshot.login_state.outcome == "success"
        assert snapshot.login_state.max_attempts == 3

    def test_snake_case_key_wins_over_camel_case(self):
        snapshot = parse_snapshot({"job_id": "snake", "jobId": "camel"})
        assert snapshot.job_id == "snake"

    def test_campaign_progress_payload(self):
        snapshot = parse_snapshot(
            {"status": "sending", "total": 10, "sent": 4, "failed": 1, "progress": 40}
        )
        assert snapshot.status == JobStatus.RUNNING
        assert snapshot.counters == {"total": 10, "sent": 4, "failed": 1}

    def test_stats_payload_has_no_status(self):
        snapshot = parse_snapshot({"total": 10, "delivered": 6, "opened": 2})
        assert snapshot.status is None
        assert snapshot.counters["delivered"] == 6

    def test_item_update_status_is_not_the_job_status(self):
        """A recipient marked 'sent' must not complete the whole job."""
        snapshot = parse_snapshot({"recipientId": "r-1", "status": "sent"})
        assert snapshot.status is None

    def test_step_from_step_details(self):
        snapshot = parse_snapshot(
            {"status": "running", "stepDetails": {"step": "scraping", "progress": 70}}
        )
        assert snapshot.step == StepId.RUNNING
        assert snapshot.progress == 70.0

    def test_error_payload_collected(self):
        snapshot = parse_snapshot(
            {
                "status": "failed",
                "error": "Login failed",
                "errorDetails": {"primary_error": {"error_code": "AUTH"}},
            }
        )
        assert snapshot.status == JobStatus.FAILED
        assert snapshot.error["error"] == "Login failed"
        assert snapshot.error["error_details"]["primary_error"]["error_code"] == "AUTH"

    def test_unknown_status_is_ignored(self):
        assert parse_snapshot({"status": "teleporting"}).status is None

    @pytest.mark.parametrize("raw", [None, "completed", ["status"], 42])
    def test_non_mapping_payload_rejected(self, raw):
        with pytest.raises(SnapshotParseError):
            parse_snapshot(raw)
