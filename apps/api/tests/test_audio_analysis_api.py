"""End-to-end HTTP tests: upload, dispatch, callback and tenant-scoped reads."""

from __future__ import annotations

import inspect
import json
import os
import unittest

from fastapi.testclient import TestClient
import httpx

from app.core.config import get_settings
from app.main import create_app
from app.routes.audio_analysis import create_job, upload_audio
from app.routes.dependencies import get_workflow_http_client
from app.routes.internal import post_audio_analysis_callback, reap_stale_jobs
from app.schemas.job import JobStatus

WEBHOOK_URL = "https://workflow.test/webhook/audio"
CALLBACK_HEADERS = {"X-Workflow-Webhook-Secret": "test-callback-secret"}
ORG1_AGENT = {"Authorization": "Bearer test:agent-1:org-1:AGENT"}
ORG1_OWNER = {"Authorization": "Bearer test:owner-1:org-1:OWNER"}
ORG2_ADMIN = {"Authorization": "Bearer test:admin-2:org-2:ADMIN"}
ORG2_SUPER_OWNER = {"Authorization": "Bearer test:root:org-2:SUPER_OWNER"}
MP3_BYTES = b"ID3\x03\x00\x00\x00\x00\x00\x00fake-mp3-frames"


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "AUDIOLENS_AUTH_PROVIDER",
        "AUDIOLENS_CALLBACK_SECRET",
        "AUDIOLENS_WORKFLOW_WEBHOOK_URL",
        "AUDIOLENS_WORKFLOW_WEBHOOK_SECRET",
        "AUDIOLENS_SEED_ORGANIZATIONS",
        "AUDIOLENS_MAX_UPLOAD_BYTES",
        "AUDIOLENS_PRESIGNED_URL_TTL_SECONDS",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["AUDIOLENS_AUTH_PROVIDER"] = "mock"
        os.environ["AUDIOLENS_CALLBACK_SECRET"] = "test-callback-secret"
        os.environ["AUDIOLENS_WORKFLOW_WEBHOOK_URL"] = WEBHOOK_URL
        os.environ["AUDIOLENS_WORKFLOW_WEBHOOK_SECRET"] = "outbound-secret"
        os.environ["AUDIOLENS_SEED_ORGANIZATIONS"] = json.dumps({"org-1": 2, "org-2": None})
        os.environ["AUDIOLENS_MAX_UPLOAD_BYTES"] = "1024"
        os.environ.pop("AUDIOLENS_PRESIGNED_URL_TTL_SECONDS", None)
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()


class AudioAnalysisApiTests(_SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.webhook_requests: list[httpx.Request] = []
        self.webhook_status = 200

        def _handler(request: httpx.Request) -> httpx.Response:
            self.webhook_requests.append(request)
            return httpx.Response(self.webhook_status, json={"accepted": True})

        self.http_client = httpx.Client(transport=httpx.MockTransport(_handler))
        self.addCleanup(self.http_client.close)
        self.app = create_app()
        self.app.dependency_overrides[get_workflow_http_client] = lambda: self.http_client
        self.client = TestClient(self.app)
        self.store = self.app.state.store

    def _upload(self, headers: dict[str, str] = ORG1_AGENT, **file_overrides):
        file_tuple = (
            file_overrides.get("filename", "call.mp3"),
            file_overrides.get("data", MP3_BYTES),
            file_overrides.get("content_type", "audio/mpeg"),
        )
        return self.client.post("/api/v1/audio-analysis/upload", headers=headers, files={"file": file_tuple})

    def _callback(self, body):
        return self.client.post("/api/v1/internal/audio-analysis/callback", headers=CALLBACK_HEADERS, json=body)

    def test_upload_stores_file_dispatches_and_returns_processing_job(self) -> None:
        response = self._upload()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["status"], "processing")
        job = self.store.jobs[body["job_id"]]
        file_record = self.store.files[body["file_id"]]
        self.assertEqual(job.status, JobStatus.PROCESSING)
        self.assertEqual(job.file_id, file_record.id)
        self.assertEqual(file_record.organization_id, "org-1")
        self.assertEqual(file_record.size, len(MP3_BYTES))
        self.assertTrue(file_record.storage_key.startswith("org-1/"))
        self.assertTrue(file_record.storage_key.endswith("-call.mp3"))
        self.assertIn(file_record.storage_key, self.app.state.blob_store)

        self.assertEqual(len(self.webhook_requests), 1)
        sent = self.webhook_requests[0]
        self.assertEqual(sent.headers["X-Workflow-Webhook-Secret"], "outbound-secret")
        self.assertEqual(json.loads(sent.content)["jobId"], job.id)
        self.assertEqual(json.loads(sent.content)["fileUrl"], file_record.url)

    def test_upload_validation_rejects_without_side_effects(self) -> None:
        cases = [
            {"filename": "notes.txt", "content_type": "text/plain"},
            {"data": b""},
            {"data": b"x" * 2048},
        ]
        for overrides in cases:
            with self.subTest(overrides={k: v for k, v in overrides.items() if k != "data"}):
                response = self._upload(**overrides)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["code"], "UPLOAD_INVALID")

        self.assertEqual(self.store.files, {})
        self.assertEqual(self.store.jobs, {})
        self.assertEqual(self.webhook_requests, [])

    def test_oversized_upload_is_rejected_on_declared_size(self) -> None:
        response = self._upload(data=b"x" * (1024 * 1024))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["details"], {"size": 1024 * 1024, "max_bytes": 1024})
        self.assertEqual(self.store.files, {})

    def test_mp3_extension_is_accepted_with_generic_mimetype(self) -> None:
        response = self._upload(filename="voicemail.MP3", content_type="binary/unknown")

        self.assertEqual(response.status_code, 201)

    def test_storage_outage_returns_503_without_job(self) -> None:
        self.app.state.blob_store.fail_next_put = "bucket unavailable"

        response = self._upload()

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["code"], "STORAGE_UNAVAILABLE")
        self.assertEqual(self.store.files, {})
        self.assertEqual(self.store.jobs, {})

    def test_dispatch_failure_returns_502_and_fails_job(self) -> None:
        self.webhook_status = 500

        response = self._upload()

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["code"], "WORKFLOW_DISPATCH_FAILED")
        self.assertEqual(response.json()["message"], "Failed to trigger processing workflow")
        (job,) = self.store.jobs.values()
        self.assertEqual(job.status, JobStatus.FAILED)
        self.assertEqual(job.error, "dispatch failed: workflow webhook returned status 500")
        self.assertEqual(self.store.count_active_jobs("org-1"), 0)

    def test_concurrency_limit_returns_429_and_frees_after_completion(self) -> None:
        first = self._upload().json()
        self._upload()

        denied = self._upload()

        self.assertEqual(denied.status_code, 429)
        self.assertEqual(denied.json()["code"], "CONCURRENT_JOB_LIMIT_EXCEEDED")
        self.assertEqual(
            denied.json()["details"],
            {"organization_id": "org-1", "current_count": 2, "max_limit": 2},
        )
        self.assertEqual(len(self.store.jobs), 2)

        self._callback({"jobId": first["job_id"], "status": "failed", "error": "bad audio"})

        self.assertEqual(self._upload().status_code, 201)

    def test_unknown_tenant_upload_returns_404(self) -> None:
        response = self._upload(headers={"Authorization": "Bearer test:user-9:org-missing:OWNER"})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "TENANT_NOT_FOUND")
        self.assertEqual(self.store.files, {})

    def test_create_job_from_existing_file_enforces_ownership(self) -> None:
        uploaded = self._upload().json()
        self._callback({"jobId": uploaded["job_id"], "status": "failed"})

        foreign = self.client.post(
            "/api/v1/audio-analysis/jobs",
            headers=ORG2_ADMIN,
            json={"file_id": uploaded["file_id"]},
        )
        self.assertEqual(foreign.status_code, 403)
        self.assertEqual(foreign.json()["code"], "FILE_NOT_OWNED")

        missing = self.client.post("/api/v1/audio-analysis/jobs", headers=ORG1_OWNER, json={"file_id": "nope"})
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["code"], "FILE_NOT_FOUND")

        rerun = self.client.post(
            "/api/v1/audio-analysis/jobs",
            headers=ORG1_OWNER,
            json={"file_id": uploaded["file_id"]},
        )
        self.assertEqual(rerun.status_code, 201)
        self.assertEqual(rerun.json()["file_id"], uploaded["file_id"])
        self.assertNotEqual(rerun.json()["job_id"], uploaded["job_id"])

    def test_completed_callback_in_array_form_exposes_result(self) -> None:
        job_id = self._upload().json()["job_id"]

        callback = self._callback(
            [
                {
                    "jobId": job_id,
                    "status": "completed",
                    "transcript": "Thanks for calling support.",
                    "sentiment": "positive",
                    "metadata": {"language": "en"},
                }
            ]
        )

        self.assertEqual(callback.status_code, 200)
        self.assertEqual(
            callback.json(),
            {
                "success": True,
                "message": "Callback processed successfully",
                "job_id": job_id,
                "status": "completed",
                "replayed": False,
            },
        )

        result = self.client.get(f"/api/v1/audio-analysis/jobs/{job_id}/results", headers=ORG1_AGENT)
        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.json()["transcript"], "Thanks for calling support.")
        self.assertEqual(result.json()["metadata"], {"language": "en"})
        self.assertEqual(result.json()["job"]["status"], "completed")
        self.assertEqual(result.json()["job"]["file"], {"filename": "call.mp3", "size": len(MP3_BYTES)})

        replay = self._callback({"jobId": job_id, "status": "completed", "transcript": "x", "sentiment": "y"})
        self.assertEqual(replay.status_code, 200)
        self.assertTrue(replay.json()["replayed"])
        self.assertEqual(self.store.result_write_count, 1)

    def test_callback_rejections_fail_the_job(self) -> None:
        job_id = self._upload().json()["job_id"]

        response = self._callback({"jobId": job_id, "status": "completed", "sentiment": "neutral"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "CALLBACK_VALIDATION_FAILED")
        job = self.client.get(f"/api/v1/audio-analysis/jobs/{job_id}", headers=ORG1_AGENT).json()
        self.assertEqual(job["status"], "failed")
        self.assertEqual(job["error"], "Missing transcript or sentiment in completed callback")

    def test_empty_callback_array_is_rejected(self) -> None:
        response = self._callback([])

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_job_status_reads_are_tenant_scoped_without_leaking(self) -> None:
        job_id = self._upload().json()["job_id"]

        own = self.client.get(f"/api/v1/audio-analysis/jobs/{job_id}", headers=ORG1_AGENT)
        foreign = self.client.get(f"/api/v1/audio-analysis/jobs/{job_id}", headers=ORG2_ADMIN)
        missing = self.client.get("/api/v1/audio-analysis/jobs/does-not-exist", headers=ORG2_ADMIN)
        super_owner = self.client.get(f"/api/v1/audio-analysis/jobs/{job_id}", headers=ORG2_SUPER_OWNER)

        self.assertEqual(own.status_code, 200)
        self.assertEqual(own.json()["status"], "processing")
        self.assertIsNotNone(own.json()["started_at"])
        self.assertEqual(own.json()["file"]["mimetype"], "audio/mpeg")
        self.assertEqual(foreign.status_code, 404)
        self.assertEqual(foreign.json(), missing.json())
        self.assertEqual(foreign.json(), {"code": "RESOURCE_NOT_FOUND", "message": "Resource not found"})
        self.assertEqual(super_owner.status_code, 200)
        self.assertEqual(super_owner.json()["organization_id"], "org-1")

    def test_result_reads_are_tenant_scoped(self) -> None:
        job_id = self._upload().json()["job_id"]

        before = self.client.get(f"/api/v1/audio-analysis/jobs/{job_id}/results", headers=ORG1_AGENT)
        self.assertEqual(before.status_code, 404)

        self._callback({"jobId": job_id, "status": "completed", "transcript": "hi", "sentiment": "neutral"})

        foreign = self.client.get(f"/api/v1/audio-analysis/jobs/{job_id}/results", headers=ORG2_ADMIN)
        self.assertEqual(foreign.status_code, 404)
        self.assertEqual(foreign.json()["code"], "RESOURCE_NOT_FOUND")
        super_owner = self.client.get(f"/api/v1/audio-analysis/jobs/{job_id}/results", headers=ORG2_SUPER_OWNER)
        self.assertEqual(super_owner.status_code, 200)

    def test_job_listing_filters_and_stats(self) -> None:
        first = self._upload().json()["job_id"]
        second = self._upload().json()["job_id"]
        self._callback({"jobId": first, "status": "failed", "error": "bad audio"})

        listing = self.client.get("/api/v1/audio-analysis/jobs", headers=ORG1_AGENT)
        self.assertEqual(listing.status_code, 200)
        self.assertEqual(listing.json()["total"], 2)
        self.assertEqual(listing.json()["limit"], 50)
        self.assertEqual([job["id"] for job in listing.json()["jobs"]], [second, first])

        failed_only = self.client.get("/api/v1/audio-analysis/jobs?status=failed", headers=ORG1_AGENT)
        self.assertEqual([job["id"] for job in failed_only.json()["jobs"]], [first])

        other_tenant = self.client.get("/api/v1/audio-analysis/jobs", headers=ORG2_ADMIN)
        self.assertEqual(other_tenant.json()["total"], 0)

        bad_limit = self.client.get("/api/v1/audio-analysis/jobs?limit=101", headers=ORG1_AGENT)
        self.assertEqual(bad_limit.status_code, 400)
        self.assertEqual(bad_limit.json()["code"], "VALIDATION_ERROR")

        stats = self.client.get("/api/v1/audio-analysis/jobs/stats", headers=ORG1_AGENT)
        self.assertEqual(stats.status_code, 200)
        self.assertEqual(
            stats.json(),
            {
                "stats": {"pending": 0, "processing": 1, "completed": 0, "failed": 1},
                "active_job_count": 1,
                "max_concurrent_jobs": 2,
            },
        )

    def test_result_listing_pagination_and_stats(self) -> None:
        sentiments = ["positive", "negative"]
        job_ids = []
        for sentiment in sentiments:
            job_id = self._upload().json()["job_id"]
            self._callback({"jobId": job_id, "status": "completed", "transcript": "t", "sentiment": sentiment})
            job_ids.append(job_id)

        page = self.client.get("/api/v1/audio-analysis/results?page=1&limit=1&sort_order=asc", headers=ORG1_AGENT)
        self.assertEqual(page.status_code, 200)
        self.assertEqual(page.json()["total"], 2)
        self.assertEqual(page.json()["total_pages"], 2)
        self.assertEqual([item["job_id"] for item in page.json()["data"]], [job_ids[0]])

        newest_first = self.client.get("/api/v1/audio-analysis/results", headers=ORG1_AGENT)
        self.assertEqual([item["job_id"] for item in newest_first.json()["data"]], list(reversed(job_ids)))

        bad_page = self.client.get("/api/v1/audio-analysis/results?page=0", headers=ORG1_AGENT)
        self.assertEqual(bad_page.status_code, 400)

        stats = self.client.get("/api/v1/audio-analysis/results/stats", headers=ORG1_AGENT)
        self.assertEqual(
            stats.json(),
            {
                "total_results": 2,
                "recent_results": 2,
                "sentiment_distribution": {"positive": 1, "negative": 1},
            },
        )


class PresignedDispatchTests(_SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        os.environ["AUDIOLENS_PRESIGNED_URL_TTL_SECONDS"] = "900"
        get_settings.cache_clear()

    def test_webhook_receives_presigned_file_url(self) -> None:
        sent: list[httpx.Request] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return httpx.Response(202)

        http_client = httpx.Client(transport=httpx.MockTransport(_handler))
        self.addCleanup(http_client.close)
        app = create_app()
        app.dependency_overrides[get_workflow_http_client] = lambda: http_client
        client = TestClient(app)

        response = client.post(
            "/api/v1/audio-analysis/upload",
            headers=ORG1_AGENT,
            files={"file": ("call.mp3", MP3_BYTES, "audio/mpeg")},
        )

        self.assertEqual(response.status_code, 201)
        file_url = json.loads(sent[0].content)["fileUrl"]
        stored_url = app.state.store.files[response.json()["file_id"]].url
        self.assertTrue(file_url.startswith(f"{stored_url}?expires="))


class RouteExecutionModelTests(unittest.TestCase):
    def test_routes_that_write_job_state_run_in_the_threadpool(self) -> None:
        for endpoint in (upload_audio, create_job, post_audio_analysis_callback, reap_stale_jobs):
            with self.subTest(endpoint=endpoint.__name__):
                self.assertFalse(inspect.iscoroutinefunction(endpoint))


if __name__ == "__main__":
    unittest.main()
