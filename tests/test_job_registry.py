from __future__ import annotations

import asyncio
import unittest
from datetime import datetime, timedelta
from typing import List

from mediarelay.config import JobCommandStatus, JobStatus
from mediarelay.exceptions import InvalidJobTransition
from mediarelay.jobs import Job, JobLookupState, JobRegistry, JobRequest

from support import RecordingChannels


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class JobRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.channels = RecordingChannels()
        self.clock = FakeClock()
        self.purged: List[Job] = []
        self.registry = JobRegistry(
            self.channels,
            retention_seconds=60,
            tombstone_limit=2,
            on_purge=self.purged.append,
            clock=self.clock,
        )

    def _create(self, **fields) -> str:
        fields.setdefault("url", "https://v.example/1")
        return self.registry.create(JobRequest.build(**fields)).job_id

    def _finished(self, status: JobStatus = JobStatus.SUCCEEDED) -> str:
        job_id = self._create()
        self.registry.mark_running(job_id)
        self.registry.finish(job_id, status, artifact_path=f"/d/{job_id}/a.mp4")
        return job_id

    def test_create_registers_pending_job_without_credentials(self) -> None:
        job_id = self._create(credentials="SID=secret")

        job = self.registry.get(job_id)
        assert job is not None
        self.assertEqual(job.status, JobStatus.PENDING.value)
        self.assertEqual(job.progress, 0)
        self.assertIsNone(job.request.credentials)
        self.assertEqual(self.channels.events, [])

    def test_progress_only_moves_forward_while_running(self) -> None:
        job_id = self._create()
        self.assertFalse(self.registry.set_progress(job_id, 10))

        self.registry.mark_running(job_id)
        self.assertTrue(self.registry.set_progress(job_id, 10))
        self.assertFalse(self.registry.set_progress(job_id, 5))
        self.assertFalse(self.registry.set_progress(job_id, 10.4))
        self.assertTrue(self.registry.set_progress(job_id, 250))

        progress = [e.data["progress"] for e in self.channels.for_job(job_id)]
        self.assertEqual(progress, [10, 100])

    def test_stage_publishes_only_on_change(self) -> None:
        job_id = self._create()
        self.registry.mark_running(job_id)

        self.registry.set_stage(job_id, "downloading video")
        self.registry.set_stage(job_id, "downloading video")
        self.registry.set_stage(job_id, "encoding")

        self.assertEqual(self.channels.names(job_id), ["stage", "stage"])

    def test_success_completes_progress_before_ready(self) -> None:
        job_id = self._create()
        self.registry.mark_running(job_id)
        self.registry.set_progress(job_id, 40)

        job = self.registry.finish(
            job_id, JobStatus.SUCCEEDED, artifact_path=f"/d/{job_id}/Clip.mp4"
        )

        self.assertEqual(self.channels.names(job_id), ["progress", "progress", "stage", "ready"])
        ready = self.channels.for_job(job_id)[-1]
        self.assertEqual(ready.data["artifact"], f"/api/jobs/{job_id}/file")
        self.assertEqual(ready.data["filename"], "Clip.mp4")
        self.assertEqual(job.progress, 100)
        self.assertEqual(job.stage, "completed")

    def test_failure_publishes_single_error_with_reason(self) -> None:
        job_id = self._create()
        self.registry.mark_running(job_id)

        self.registry.finish(job_id, JobStatus.FAILED, error_message="unsupported URL")

        events = self.channels.for_job(job_id)
        self.assertEqual([e.event for e in events], ["error"])
        self.assertEqual(events[0].data, {"message": "unsupported URL", "reason": "failed"})
        with self.assertRaises(InvalidJobTransition):
            self.registry.finish(job_id, JobStatus.SUCCEEDED)
        self.assertEqual(len(self.channels.for_job(job_id)), 1)

    def test_cancelled_job_has_no_error_message(self) -> None:
        job_id = self._create()
        self.registry.mark_running(job_id)

        job = self.registry.finish(job_id, JobStatus.CANCELLED, error_message="ignored")

        self.assertIsNone(job.error_message)
        self.assertEqual(self.channels.for_job(job_id)[-1].data["reason"], "cancelled")

    def test_request_cancel_reports_each_outcome(self) -> None:
        missing = self.registry.request_cancel("nope")
        self.assertIs(missing.status, JobCommandStatus.NOT_FOUND)

        job_id = self._create()
        first = self.registry.request_cancel(job_id)
        second = self.registry.request_cancel(job_id)
        self.assertIs(first.status, JobCommandStatus.CANCEL_REQUESTED)
        self.assertIs(second.status, JobCommandStatus.CANCEL_REQUESTED)
        self.assertTrue(self.registry.is_cancel_requested(job_id))

        done = self._finished()
        terminal = self.registry.request_cancel(done)
        self.assertIs(terminal.status, JobCommandStatus.ALREADY_TERMINAL)
        self.assertEqual(terminal.to_payload()["job_status"], "succeeded")

    def test_counts_group_by_status(self) -> None:
        self._create()
        self._finished()

        counts = self.registry.counts()

        self.assertEqual(counts["total"], 2)
        self.assertEqual(counts["active"], 1)
        self.assertEqual(counts["status_counts"]["succeeded"], 1)

    def test_purge_leaves_tombstones_after_retention(self) -> None:
        job_id = self._finished()
        self.assertEqual(self.registry.purge_expired(), [])

        self.clock.advance(61)
        self.assertEqual(self.registry.purge_expired(), [job_id])

        self.assertIs(self.registry.lookup(job_id).state, JobLookupState.EXPIRED)
        self.assertIs(self.registry.lookup("unknown").state, JobLookupState.MISSING)
        self.assertEqual([job.job_id for job in self.purged], [job_id])

    def test_tombstones_are_bounded(self) -> None:
        ids = [self._finished() for _ in range(3)]
        self.clock.advance(61)

        self.registry.purge_expired()

        self.assertIs(self.registry.lookup(ids[0]).state, JobLookupState.MISSING)
        self.assertIs(self.registry.lookup(ids[2]).state, JobLookupState.EXPIRED)

    def test_running_and_subscribed_jobs_are_not_purged(self) -> None:
        running = self._create()
        self.registry.mark_running(running)
        watched = self._finished()
        loop = asyncio.new_event_loop()
        self.addCleanup(loop.close)
        subscription = self.channels.subscribe(watched, loop)
        self.clock.advance(3600)

        self.assertEqual(self.registry.purge_expired(), [])

        subscription.close()
        self.assertEqual(self.registry.purge_expired(), [watched])
        self.assertIsNotNone(self.registry.get(running))

    def test_subscribe_replays_terminal_snapshot(self) -> None:
        job_id = self._finished()

        async def collect():
            subscription = self.registry.subscribe(job_id, asyncio.get_running_loop())
            assert subscription is not None
            return [event async for event in subscription]

        events = asyncio.run(collect())

        self.assertEqual([e.event for e in events], ["stage", "progress", "ready"])
        self.assertEqual(events[1].data["progress"], 100)
        self.assertFalse(self.channels.has_subscribers(job_id))

    def test_subscribe_unknown_job_returns_none(self) -> None:
        loop = asyncio.new_event_loop()
        self.addCleanup(loop.close)

        self.assertIsNone(self.registry.subscribe("missing", loop))

    def test_logs_are_bounded(self) -> None:
        job_id = self._create()
        for index in range(250):
            self.registry.append_log(job_id, "info", f"line {index}")

        job = self.registry.get(job_id)
        assert job is not None
        entries = job.log_entries()
        self.assertEqual(len(entries), 200)
        self.assertEqual(entries[-1]["message"], "line 249")


if __name__ == "__main__":
    unittest.main()
