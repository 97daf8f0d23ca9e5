"""Job registry and job route ownership tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
import os
import unittest

from fastapi.testclient import TestClient

from app.core.config import get_settings
from app.errors import ApiError
from app.main import create_app
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobStatus, Transcript, TranscriptSegment
from app.services.jobs import JobRegistry
from app.services.locks import ReviewLockManager


def _transcript() -> Transcript:
    return Transcript(
        duration=3.0,
        language="en",
        segments=[TranscriptSegment(id=0, start_time="00:00:00", end_time="00:00:03", type="speech", text="hi there")],
    )


class _Clock:
    def __init__(self) -> None:
        self.current = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current


class _SettingsEnvCase(unittest.TestCase):
    _env_keys = (
        "TRANSCRIPT_REVIEW_AUTH_PROVIDER",
        "TRANSCRIPT_REVIEW_CALLBACK_SECRET",
        "TRANSCRIPT_REVIEW_FIREBASE_PROJECT_ID",
        "TRANSCRIPT_REVIEW_FIREBASE_AUDIENCE",
    )

    def setUp(self) -> None:
        self._old_env = {k: os.environ.get(k) for k in self._env_keys}
        os.environ["TRANSCRIPT_REVIEW_AUTH_PROVIDER"] = "mock"
        os.environ["TRANSCRIPT_REVIEW_CALLBACK_SECRET"] = "test-callback-secret"
        os.environ["TRANSCRIPT_REVIEW_FIREBASE_PROJECT_ID"] = "test-project"
        os.environ["TRANSCRIPT_REVIEW_FIREBASE_AUDIENCE"] = "test-audience"
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()


class JobsApiTests(_SettingsEnvCase):
    def test_create_job_sets_pending_status_and_owner(self) -> None:
        app = create_app()
        client = TestClient(app)

        response = client.post(
            "/api/v1/jobs",
            headers={"Authorization": "Bearer test:owner-1"},
            json={"audio_url": "https://cdn.example/uploads/meeting.wav?sig=abc", "request_human_review": True},
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["status"], "pending")
        self.assertEqual(body["owner_id"], "owner-1")
        self.assertEqual(body["audio_file_name"], "meeting.wav")
        self.assertTrue(body["request_human_review"])
        self.assertIn(body["id"], app.state.store.jobs)

    def test_create_job_invalid_payload_returns_422_without_side_effects(self) -> None:
        app = create_app()
        client = TestClient(app)

        response = client.post("/api/v1/jobs", headers={"Authorization": "Bearer test:owner-1"}, json={"audio_url": ""})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(app.state.store.write_count, 0)

    def test_get_job_owner_or_editor_and_no_leak_for_others(self) -> None:
        app = create_app()
        client = TestClient(app)
        job = JobRegistry(app.state.store).create(
            owner_id="owner-1",
            audio_url="https://cdn.example/a.mp3",
            request_review=False,
        )

        owner = client.get(f"/api/v1/jobs/{job.id}", headers={"Authorization": "Bearer test:owner-1"})
        editor = client.get(f"/api/v1/jobs/{job.id}", headers={"Authorization": "Bearer test:editor-1:editor"})
        other = client.get(f"/api/v1/jobs/{job.id}", headers={"Authorization": "Bearer test:owner-2"})
        missing = client.get("/api/v1/jobs/missing", headers={"Authorization": "Bearer test:owner-1"})

        self.assertEqual(owner.status_code, 200)
        self.assertEqual(editor.status_code, 200)
        self.assertEqual(other.status_code, 404)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(other.json(), missing.json())
        self.assertEqual(other.json(), {"code": "RESOURCE_NOT_FOUND", "message": "Resource not found"})

    def test_list_jobs_is_owner_scoped_and_admin_sees_all(self) -> None:
        app = create_app()
        client = TestClient(app)
        jobs = JobRegistry(app.state.store)
        mine = jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)
        jobs.create(owner_id="owner-2", audio_url="https://cdn.example/b.mp3", request_review=False)

        owned = client.get("/api/v1/jobs", headers={"Authorization": "Bearer test:owner-1"})
        everything = client.get("/api/v1/jobs", headers={"Authorization": "Bearer test:root-1:admin"})

        self.assertEqual([item["id"] for item in owned.json()], [mine.id])
        self.assertEqual(len(everything.json()), 2)

    def test_patch_request_review_moves_completed_job_into_queue(self) -> None:
        app = create_app()
        client = TestClient(app)
        jobs = JobRegistry(app.state.store)
        job = jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)
        jobs.mark_processing(job.id, external_job_id="stt-1")
        jobs.record_transcript(job.id, transcript=_transcript())

        response = client.patch(
            f"/api/v1/jobs/{job.id}",
            headers={"Authorization": "Bearer test:owner-1"},
            json={"request_human_review": True},
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "pending_review")
        self.assertTrue(response.json()["request_human_review"])

    def test_patch_by_non_owner_is_no_leak_404_without_mutation(self) -> None:
        app = create_app()
        client = TestClient(app)
        job = JobRegistry(app.state.store).create(
            owner_id="owner-1",
            audio_url="https://cdn.example/a.mp3",
            request_review=False,
        )
        before_writes = app.state.store.write_count

        response = client.patch(
            f"/api/v1/jobs/{job.id}",
            headers={"Authorization": "Bearer test:editor-1:editor"},
            json={"audio_file_name": "renamed.mp3"},
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(app.state.store.write_count, before_writes)
        self.assertEqual(app.state.store.jobs[job.id].audio_file_name, "a.mp3")

    def test_patch_request_review_on_failed_job_returns_409(self) -> None:
        app = create_app()
        client = TestClient(app)
        jobs = JobRegistry(app.state.store)
        job = jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)
        jobs.mark_failed(job.id, message="boom")

        response = client.patch(
            f"/api/v1/jobs/{job.id}",
            headers={"Authorization": "Bearer test:owner-1"},
            json={"request_human_review": True},
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "FSM_TERMINAL_IMMUTABLE")

    def test_delete_job_owner_or_admin_and_drops_lock(self) -> None:
        app = create_app()
        client = TestClient(app)
        store = app.state.store
        jobs = JobRegistry(store)
        job = jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=True)
        jobs.mark_processing(job.id, external_job_id="stt-1")
        jobs.record_transcript(job.id, transcript=_transcript())
        ReviewLockManager(store, jobs).acquire(job_id=job.id, editor_id="editor-1", editor_name="Editor")

        forbidden = client.delete(f"/api/v1/jobs/{job.id}", headers={"Authorization": "Bearer test:owner-2"})
        self.assertEqual(forbidden.status_code, 404)
        self.assertIn(job.id, store.jobs)

        deleted = client.delete(f"/api/v1/jobs/{job.id}", headers={"Authorization": "Bearer test:owner-1"})
        self.assertEqual(deleted.status_code, 204)
        self.assertNotIn(job.id, store.jobs)
        self.assertNotIn(job.id, store.locks)

        again = client.delete(f"/api/v1/jobs/{job.id}", headers={"Authorization": "Bearer test:root-1:admin"})
        self.assertEqual(again.status_code, 404)


class JobRegistryUnitTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = _Clock()
        self.store = InMemoryStore(clock=self.clock)
        self.jobs = JobRegistry(self.store)

    def test_create_derives_file_name_and_defaults(self) -> None:
        named = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/x/talk.m4a", request_review=False)
        bare = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/", request_review=False)
        explicit = self.jobs.create(
            owner_id="owner-1",
            audio_url="https://cdn.example/x/talk.m4a",
            request_review=False,
            audio_file_name="Board call.m4a",
        )

        self.assertEqual(named.audio_file_name, "talk.m4a")
        self.assertEqual(bare.audio_file_name, "audio.mp3")
        self.assertEqual(explicit.audio_file_name, "Board call.m4a")
        self.assertEqual(named.created_at, named.updated_at)
        self.assertIsNone(named.transcript)

    def test_list_for_owner_returns_newest_first(self) -> None:
        first = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/1.mp3", request_review=False)
        self.clock.current += timedelta(seconds=5)
        second = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/2.mp3", request_review=False)
        self.jobs.create(owner_id="owner-2", audio_url="https://cdn.example/3.mp3", request_review=False)

        self.assertEqual([record.id for record in self.jobs.list_for_owner("owner-1")], [second.id, first.id])

    def test_update_rejects_immutable_fields(self) -> None:
        job = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)

        for field_name in (
            "id",
            "owner_id",
            "created_at",
            "updated_at",
            "transcript",
            "completed_at",
            "verified_at",
            "verified_by",
        ):
            with self.subTest(field_name=field_name):
                with self.assertRaises(ValueError):
                    self.jobs.update(job.id, **{field_name: "x"})

        self.assertIsNone(self.jobs.update("missing", audio_file_name="b.mp3"))

    def test_update_cannot_rewrite_verification_of_verified_job(self) -> None:
        job = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=True)
        self.jobs.mark_processing(job.id, external_job_id="stt-1")
        self.jobs.record_transcript(job.id, transcript=_transcript())
        verified = ReviewLockManager(self.store, self.jobs).verify(job_id=job.id, editor_id="editor-1")
        before_writes = self.store.write_count

        with self.assertRaises(ValueError):
            self.jobs.update(
                job.id,
                verified_by="editor-2",
                verified_at=datetime(2000, 1, 1, tzinfo=UTC),
                transcript=None,
            )

        stored = self.store.jobs[job.id]
        self.assertEqual(stored.verified_by, "editor-1")
        self.assertEqual(stored.verified_at, verified.verified_at)
        self.assertEqual(stored.transcript, verified.transcript)
        self.assertEqual(self.store.write_count, before_writes)

    def test_update_rejects_unknown_fields_with_value_error(self) -> None:
        job = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)

        with self.assertRaisesRegex(ValueError, "Unknown job fields: colour"):
            self.jobs.update(job.id, colour="blue")

        self.assertEqual(self.store.jobs[job.id], job)

    def test_update_stores_string_status_as_enum_member(self) -> None:
        job = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=True)
        self.jobs.mark_processing(job.id, external_job_id="stt-1")

        updated = self.jobs.update(job.id, status="pending_review")

        self.assertIs(updated.status, JobStatus.PENDING_REVIEW)
        self.assertIs(self.store.jobs[job.id].status, JobStatus.PENDING_REVIEW)

        lock = ReviewLockManager(self.store, self.jobs).acquire(job_id=job.id, editor_id="editor-1", editor_name="E1")

        self.assertEqual(lock.editor_id, "editor-1")
        self.assertIs(self.store.jobs[job.id].status, JobStatus.IN_REVIEW)

    def test_update_rejects_unknown_status_value(self) -> None:
        job = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)

        with self.assertRaises(ValueError):
            self.jobs.update(job.id, status="archived")

        self.assertIs(self.store.jobs[job.id].status, JobStatus.PENDING)

    def test_update_merges_fields_and_moves_updated_at_forward(self) -> None:
        job = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)
        self.clock.current += timedelta(minutes=1)

        updated = self.jobs.update(job.id, audio_file_name="b.mp3", status=JobStatus.PROCESSING)

        self.assertEqual(updated.audio_file_name, "b.mp3")
        self.assertEqual(updated.status, JobStatus.PROCESSING)
        self.assertEqual(updated.updated_at, self.clock.current)
        self.assertEqual(updated.created_at, job.created_at)

    def test_update_cannot_enter_lock_governed_statuses(self) -> None:
        job = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=True)
        self.jobs.mark_processing(job.id, external_job_id="stt-1")
        self.jobs.record_transcript(job.id, transcript=_transcript())

        with self.assertRaises(ApiError) as context:
            self.jobs.update(job.id, status=JobStatus.IN_REVIEW)

        self.assertEqual(context.exception.payload.code, "LOCK_GOVERNED_STATUS")
        self.assertEqual(self.store.jobs[job.id].status, JobStatus.PENDING_REVIEW)

    def test_record_transcript_fills_missing_text(self) -> None:
        job = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)
        self.jobs.mark_processing(job.id, external_job_id=None)

        completed = self.jobs.record_transcript(job.id, transcript=_transcript(), processing_time=1.5)

        self.assertEqual(completed.status, JobStatus.COMPLETED)
        self.assertEqual(completed.transcript.text, "hi there")
        self.assertEqual(completed.processing_time, 1.5)
        self.assertEqual(completed.completed_at, self.clock.current)

    def test_request_review_routes_by_current_status(self) -> None:
        pending = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)

        flagged = self.jobs.request_review(pending.id)
        self.assertEqual(flagged.status, JobStatus.PENDING)
        self.assertTrue(flagged.request_human_review)

        self.jobs.mark_processing(pending.id, external_job_id="stt-1")
        routed = self.jobs.record_transcript(pending.id, transcript=_transcript())
        self.assertEqual(routed.status, JobStatus.PENDING_REVIEW)

        writes = self.store.write_count
        self.assertEqual(self.jobs.request_review(pending.id).status, JobStatus.PENDING_REVIEW)
        self.assertEqual(self.store.write_count, writes)
        self.assertIsNone(self.jobs.request_review("missing"))

    def test_mark_failed_keeps_message(self) -> None:
        job = self.jobs.create(owner_id="owner-1", audio_url="https://cdn.example/a.mp3", request_review=False)

        failed = self.jobs.mark_failed(job.id, message="decoder crashed")

        self.assertEqual(failed.status, JobStatus.FAILED)
        self.assertEqual(failed.failure_message, "decoder crashed")
        self.assertIsNone(self.jobs.mark_failed("missing", message="x"))


if __name__ == "__main__":
    unittest.main()
