from __future__ import annotations

import os
import tempfile
import threading
import unittest

from mediarelay.config import JobStatus
from mediarelay.exceptions import DownloadCancelled
from mediarelay.jobs import JobRegistry, JobRequest
from mediarelay.jobs.controller import JobController, JobReporter

from support import VIDEO_720_STEPS, RecordingChannels, ScriptedBackend, failing_backend


class JobControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.download_root = self._tmp.name
        self.channels = RecordingChannels()
        self.registry = JobRegistry(self.channels)

    def _controller(self, backend: ScriptedBackend) -> JobController:
        return JobController(self.registry, backend, download_root=self.download_root)

    def _run(self, backend: ScriptedBackend, **fields):
        fields.setdefault("url", "https://v.example/watch?v=1")
        controller = self._controller(backend)
        job = controller.start(JobRequest.build(**fields))
        self.assertTrue(controller.join(job.job_id, timeout=5))
        finished = self.registry.get(job.job_id)
        assert finished is not None
        return controller, finished

    def test_video_job_reports_stages_then_ready(self) -> None:
        backend = ScriptedBackend(VIDEO_720_STEPS)

        _, job = self._run(backend, operation="video", quality="720")

        self.assertEqual(job.status, JobStatus.SUCCEEDED.value)
        self.assertEqual(job.progress, 100)
        self.assertEqual(job.filename, "Clip_1280x720.mp4")
        self.assertTrue(os.path.isfile(job.artifact_path or ""))
        events = self.channels.for_job(job.job_id)
        self.assertEqual(
            [(e.event, e.data.get("stage", e.data.get("progress"))) for e in events[:-1]],
            [
                ("stage", "fetching metadata"),
                ("stage", "downloading video"),
                ("progress", 10),
                ("progress", 55),
                ("progress", 100),
                ("stage", "encoding"),
                ("stage", "completed"),
            ],
        )
        self.assertEqual(events[-1].event, "ready")
        self.assertEqual(events[-1].data["filename"], "Clip_1280x720.mp4")
        self.assertEqual(backend.requests[0].quality, "720")

    def test_backend_receives_credentials_registry_does_not(self) -> None:
        backend = ScriptedBackend()

        _, job = self._run(backend, credentials="SID=secret")

        self.assertEqual(backend.requests[0].credentials, "SID=secret")
        self.assertIsNone(job.request.credentials)

    def test_failure_ends_job_with_message_and_cleans_workdir(self) -> None:
        backend = failing_backend("ERROR: Unsupported URL: https://v.example")

        _, job = self._run(backend)

        self.assertEqual(job.status, JobStatus.FAILED.value)
        self.assertEqual(job.error_message, "Unsupported URL: https://v.example")
        terminal = [e for e in self.channels.for_job(job.job_id) if e.terminal]
        self.assertEqual(len(terminal), 1)
        self.assertEqual(terminal[0].data["reason"], "failed")
        self.assertFalse(os.path.exists(backend.workdirs[0]))

    def test_unexpected_exception_fails_the_job(self) -> None:
        backend = ScriptedBackend(error=ValueError("bad info dict"))

        _, job = self._run(backend)

        self.assertEqual(job.status, JobStatus.FAILED.value)
        self.assertEqual(job.error_message, "bad info dict")

    def test_cancel_before_any_progress(self) -> None:
        gate = threading.Event()
        backend = ScriptedBackend([("stage", "fetching metadata")], gate=gate)
        controller = self._controller(backend)
        job = controller.start(JobRequest.build(url="https://v.example/1"))
        self.assertTrue(backend.started.wait(5))

        result = controller.cancel(job.job_id)
        gate.set()
        self.assertTrue(controller.join(job.job_id, timeout=5))

        self.assertEqual(result.to_payload()["status"], "cancel_requested")
        finished = self.registry.get(job.job_id)
        assert finished is not None
        self.assertEqual(finished.status, JobStatus.CANCELLED.value)
        self.assertEqual(finished.progress, 0)
        events = self.channels.for_job(job.job_id)
        self.assertEqual([e.event for e in events], ["stage", "error"])
        self.assertEqual(events[-1].data, {"message": "download cancelled", "reason": "cancelled"})
        self.assertFalse(os.path.exists(backend.workdirs[0]))

    def test_cancel_wins_over_late_success(self) -> None:
        class IgnoresCancellation(ScriptedBackend):
            def execute(self, request, workdir, reporter, *, logger=None):
                reporter.checkpoint = lambda: None
                return super().execute(request, workdir, reporter, logger=logger)

        gate = threading.Event()
        backend = IgnoresCancellation(gate=gate)
        controller = self._controller(backend)
        job = controller.start(JobRequest.build(url="https://v.example/1"))
        self.assertTrue(backend.started.wait(5))

        controller.cancel(job.job_id)
        gate.set()
        self.assertTrue(controller.join(job.job_id, timeout=5))

        finished = self.registry.get(job.job_id)
        assert finished is not None
        self.assertEqual(finished.status, JobStatus.CANCELLED.value)
        self.assertEqual(self.channels.names(job.job_id)[-1], "error")

    def test_checkpoint_raises_once_cancelled(self) -> None:
        gate = threading.Event()
        backend = ScriptedBackend(gate=gate)
        controller = self._controller(backend)
        job = controller.start(JobRequest.build(url="https://v.example/1"))
        self.assertTrue(backend.started.wait(5))
        self.registry.request_cancel(job.job_id)

        reporter = JobReporter(self.registry, job)
        with self.assertRaises(DownloadCancelled):
            reporter.checkpoint()
        gate.set()
        controller.join(job.job_id, timeout=5)

    def test_backend_log_lines_are_kept_on_the_job(self) -> None:
        _, job = self._run(ScriptedBackend())

        messages = [entry["message"] for entry in job.log_entries()]
        self.assertIn("[scripted] https://v.example/watch?v=1", messages)


if __name__ == "__main__":
    unittest.main()
