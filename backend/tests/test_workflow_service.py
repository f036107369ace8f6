import json
from datetime import datetime, timezone

import pytest

from recruitment.repositories import job_repository
from recruitment.services.audit_service import AuditTrailError
from recruitment.services.transition_table import (
    TRANSITION_TABLE,
    TRANSITIONS,
    JobStatus,
    TransitionErrorCode,
)
from recruitment.services.workflow_service import (
    BulkTransitionResult,
    JobStatusWorkflowService,
    TransitionResult,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ACTOR = 42

FULL_PAYLOAD = {
    "archive_reason": "Role merged into another posting",
    "close_reason": "position_filled",
    "handle_pending_applications": "reject_all",
}

UNDEFINED_PAIRS = [
    (frm, to) for frm in JobStatus for to in JobStatus
    if TRANSITION_TABLE.lookup(frm, to) is None
]

REQUIRED_FIELD_CASES = [
    (rule.from_status, rule.to_status, name)
    for rule in TRANSITIONS if rule.allowed
    for name in rule.required_fields
]


@pytest.fixture
def service():
    return JobStatusWorkflowService(clock=lambda: NOW)


def _records(db, job_id):
    return job_repository.find_transitions_by_job_id(db, job_id)


class TestRejections:
    @pytest.mark.parametrize("frm, to", UNDEFINED_PAIRS)
    def test_undefined_pair_fails_without_writes(self, db, make_job, service, frm, to):
        job = make_job(status=frm.value)
        result = service.transition_status(db, job.id, frm, to, dict(FULL_PAYLOAD), ACTOR)

        assert result.success is False
        assert result.code == TransitionErrorCode.RULE_NOT_FOUND
        db.refresh(job)
        assert job.status == frm.value
        assert job.status_changed_at is None
        assert _records(db, job.id) == []

    @pytest.mark.parametrize("frm, to, field", REQUIRED_FIELD_CASES)
    def test_each_required_field_is_enforced(self, db, make_job, service, frm, to, field):
        job = make_job(status=frm.value)
        payload = {k: v for k, v in FULL_PAYLOAD.items() if k != field}

        result = service.transition_status(db, job.id, frm, to, payload, ACTOR)

        assert result.success is False
        assert result.code == TransitionErrorCode.MISSING_REQUIRED_FIELD
        assert f"'{field}'" in result.error
        db.refresh(job)
        assert job.status == frm.value
        assert _records(db, job.id) == []

    def test_rejection_is_repeatable(self, db, make_job, service):
        job = make_job(status="archived")
        first = service.transition_status(db, job.id, "archived", "published", {}, ACTOR)
        second = service.transition_status(db, job.id, "archived", "published", {}, ACTOR)

        assert first == second
        assert first == TransitionResult(
            success=False,
            error="Transition from archived to published is not allowed.",
            code=TransitionErrorCode.FORBIDDEN_TRANSITION,
        )
        assert _records(db, job.id) == []

    @pytest.mark.parametrize("payload", [
        {},
        dict(FULL_PAYLOAD),
        {"validation_override": True, "has_pending_applications": False},
    ])
    def test_archived_can_never_be_published(self, db, make_job, service, payload):
        job = make_job(status="archived")
        result = service.transition_status(db, job.id, JobStatus.ARCHIVED, JobStatus.PUBLISHED, payload, ACTOR)
        assert result.code == TransitionErrorCode.FORBIDDEN_TRANSITION
        db.refresh(job)
        assert job.status == "archived"

    def test_pending_applications_block_archive(self, db, make_job, add_application, service):
        job = make_job(status="published")
        add_application(job.id, status="pending")

        result = service.transition_status(
            db, job.id, "published", "archived",
            # the stored applications win over a caller-supplied flag
            {"archive_reason": "Stale", "has_pending_applications": False},
            ACTOR,
        )

        assert result.code == TransitionErrorCode.BUSINESS_RULE_REJECTED
        assert result.error == "Cannot archive with pending applications"
        db.refresh(job)
        assert job.status == "published"
        assert _records(db, job.id) == []

    def test_reviewed_applications_do_not_block_archive(self, db, make_job, add_application, service):
        job = make_job(status="published")
        add_application(job.id, status="approved")
        add_application(job.id, status="rejected")

        result = service.transition_status(db, job.id, "published", "archived", {"archive_reason": "Stale"}, ACTOR)
        assert result.success is True

    def test_injected_pending_counter(self, db, make_job):
        job = make_job(status="published")
        service = JobStatusWorkflowService(clock=lambda: NOW, pending_applications_counter=lambda db, job_id: 3)
        result = service.transition_status(db, job.id, "published", "archived", {"archive_reason": "Stale"}, ACTOR)
        assert result.code == TransitionErrorCode.BUSINESS_RULE_REJECTED

    def test_stale_from_status_is_a_conflict(self, db, make_job, service):
        job = make_job(status="published")
        result = service.transition_status(db, job.id, "draft", "published", {}, ACTOR)

        assert result.success is False
        assert result.code == TransitionErrorCode.STATUS_CONFLICT
        db.refresh(job)
        assert job.previous_status is None
        assert _records(db, job.id) == []

    def test_unknown_job_is_a_conflict(self, db, service):
        result = service.transition_status(db, 9999, "draft", "published", {}, ACTOR)
        assert result.code == TransitionErrorCode.STATUS_CONFLICT


class TestSuccessfulTransitions:
    def test_publish_sets_status_fields_and_one_record(self, db, make_job, service):
        job = make_job(status="draft")
        result = service.transition_status(db, job.id, JobStatus.DRAFT, JobStatus.PUBLISHED, {}, ACTOR)

        assert result == TransitionResult(success=True)
        db.refresh(job)
        assert job.status == "published"
        assert job.previous_status == "draft"
        assert job.status_changed_by == ACTOR
        assert job.status_changed_at == "2026-03-01T12:00:00Z"
        assert job.published_at == "2026-03-01T12:00:00Z"

        records = _records(db, job.id)
        assert len(records) == 1
        assert (records[0].from_status, records[0].to_status, records[0].created_by) == ("draft", "published", ACTOR)
        assert records[0].created_at == "2026-03-01T12:00:00Z"

    def test_close_persists_workflow_fields(self, db, make_job, service):
        job = make_job(status="published")
        payload = {
            "close_reason": "budget_constraints",
            "handle_pending_applications": "keep_pending",
            "close_notes": "Frozen until Q3",
        }
        result = service.transition_status(db, job.id, "published", "closed", payload, ACTOR)

        assert result.success
        db.refresh(job)
        assert job.status == "closed"
        assert job.close_reason == "budget_constraints"
        assert job.close_notes == "Frozen until Q3"
        assert job.closed_at == "2026-03-01T12:00:00Z"

        (record,) = _records(db, job.id)
        assert record.transition_reason == "budget_constraints"
        assert json.loads(record.transition_data) == payload

    def test_reopen_needs_no_payload(self, db, make_job, service):
        job = make_job(status="closed")
        result = service.transition_status(db, job.id, "closed", "published", {}, ACTOR)

        assert result.success
        db.refresh(job)
        assert job.status == "published"
        assert job.previous_status == "closed"

    def test_full_lifecycle_keeps_previous_status_in_step(self, db, make_job, service):
        job = make_job(status="draft")
        steps = [
            ("draft", "published", {}),
            ("published", "closed", {"close_reason": "cancelled", "handle_pending_applications": "reject_all"}),
            ("closed", "published", {}),
            ("published", "archived", {"archive_reason": "Done"}),
        ]
        for frm, to, payload in steps:
            assert service.transition_status(db, job.id, frm, to, payload, ACTOR).success
            db.refresh(job)
            assert (job.previous_status, job.status) == (frm, to)

        records = _records(db, job.id)
        assert [(r.from_status, r.to_status) for r in records] == [(f, t) for f, t, _ in steps]
        assert job.archive_reason == "Done"

    def test_publishing_a_draft_clears_its_schedule(self, db, make_job, service):
        job = make_job(status="draft", scheduled_publish_at="2026-03-01T11:00:00Z")
        service.transition_status(db, job.id, "draft", "published", {"scheduled_publish_at": "2026-03-01T11:00:00Z"}, ACTOR)
        db.refresh(job)
        assert job.scheduled_publish_at is None

    def test_available_transitions(self, service):
        assert service.available_transitions("draft") == [
            {"to_status": JobStatus.PUBLISHED, "required_fields": []},
            {"to_status": JobStatus.ARCHIVED, "required_fields": ["archive_reason"]},
        ]
        assert service.available_transitions("archived") == []


class TestAuditTrailFailures:
    def test_missing_record_is_surfaced_after_retries(self, db, make_job, monkeypatch):
        job = make_job(status="draft")
        calls = []

        def broken_insert(*args, **kwargs):
            calls.append(kwargs["job_posting_id"])
            raise RuntimeError("disk I/O error")

        monkeypatch.setattr(job_repository, "log_status_transition", broken_insert)
        service = JobStatusWorkflowService(clock=lambda: NOW, audit_write_attempts=3)

        with pytest.raises(AuditTrailError) as excinfo:
            service.transition_status(db, job.id, "draft", "published", {}, ACTOR)

        assert calls == [job.id, job.id, job.id]
        assert excinfo.value.job_id == job.id
        assert isinstance(excinfo.value.cause, RuntimeError)
        assert excinfo.value.__cause__ is excinfo.value.cause
        # the status patch is ordered before the record and stays committed
        db.refresh(job)
        assert job.status == "published"
        monkeypatch.undo()
        assert _records(db, job.id) == []

    def test_transient_failure_is_retried(self, db, make_job, monkeypatch):
        job = make_job(status="draft")
        real_insert = job_repository.log_status_transition
        attempts = []

        def flaky_insert(*args, **kwargs):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("database is locked")
            return real_insert(*args, **kwargs)

        monkeypatch.setattr(job_repository, "log_status_transition", flaky_insert)
        service = JobStatusWorkflowService(clock=lambda: NOW, audit_write_attempts=2)

        assert service.transition_status(db, job.id, "draft", "published", {}, ACTOR).success
        assert len(attempts) == 2
        assert len(_records(db, job.id)) == 1

    def test_each_failed_attempt_is_logged(self, db, make_job, monkeypatch, caplog):
        job = make_job(status="draft")

        def broken_insert(*args, **kwargs):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(job_repository, "log_status_transition", broken_insert)
        service = JobStatusWorkflowService(clock=lambda: NOW, audit_write_attempts=2)

        with caplog.at_level("WARNING", logger="recruitment.audit"):
            with pytest.raises(AuditTrailError):
                service.transition_status(db, job.id, "draft", "published", {}, ACTOR)

        audit = [r for r in caplog.records if r.name == "recruitment.audit"]
        warnings = [r.getMessage() for r in audit if r.levelname == "WARNING"]
        errors = [r for r in audit if r.levelname == "ERROR"]
        assert len(warnings) == 2
        assert "(attempt 1/2)" in warnings[0]
        assert "(attempt 2/2)" in warnings[1]
        assert len(errors) == 1
        assert "AUDIT TRAIL INCONSISTENCY" in errors[0].getMessage()


class TestBulkTransitions:
    def test_each_job_is_independent(self, db, make_job, add_application, service):
        job_a = make_job(status="published", title="A")
        job_b = make_job(status="published", title="B")
        add_application(job_b.id, status="pending")

        results = service.bulk_transition_status(
            db, [job_a.id, job_b.id], "published", "archived", {"archive_reason": "Hiring freeze"}, ACTOR
        )

        assert results == [
            BulkTransitionResult(job_id=job_a.id, success=True),
            BulkTransitionResult(
                job_id=job_b.id,
                success=False,
                error="Cannot archive with pending applications",
                code=TransitionErrorCode.BUSINESS_RULE_REJECTED,
            ),
        ]
        assert len(_records(db, job_a.id)) == 1
        assert _records(db, job_b.id) == []
        db.refresh(job_a)
        db.refresh(job_b)
        assert (job_a.status, job_b.status) == ("archived", "published")

    def test_one_record_per_job(self, db, make_job, service):
        jobs = [make_job(status="draft", title=f"Job {i}") for i in range(3)]
        results = service.bulk_transition_status(db, [j.id for j in jobs], "draft", "published", {}, ACTOR)

        assert all(r.success for r in results)
        for job in jobs:
            records = _records(db, job.id)
            assert len(records) == 1
            assert records[0].created_by == ACTOR

    def test_no_rollback_of_earlier_successes(self, db, make_job, service):
        draft = make_job(status="draft")
        already_published = make_job(status="published")

        results = service.bulk_transition_status(
            db, [draft.id, already_published.id], "draft", "published", {}, ACTOR
        )

        assert [r.success for r in results] == [True, False]
        assert results[1].code == TransitionErrorCode.STATUS_CONFLICT
        db.refresh(draft)
        assert draft.status == "published"

    def test_storage_failure_is_reported_per_job(self, db, make_job, service, monkeypatch):
        jobs = [make_job(status="draft", title=f"Job {i}") for i in range(3)]
        real_insert = job_repository.log_status_transition

        def insert_failing_for_second_job(*args, **kwargs):
            if kwargs["job_posting_id"] == jobs[1].id:
                raise RuntimeError("disk I/O error")
            return real_insert(*args, **kwargs)

        monkeypatch.setattr(job_repository, "log_status_transition", insert_failing_for_second_job)

        results = service.bulk_transition_status(db, [j.id for j in jobs], "draft", "published", {}, ACTOR)

        assert [r.job_id for r in results] == [j.id for j in jobs]
        assert [r.success for r in results] == [True, False, True]
        assert results[1].code == TransitionErrorCode.PERSISTENCE_FAILURE
        assert "transition record was not written" in results[1].error
        for job in jobs:
            db.refresh(job)
        # the status patch of the failed job committed before its record
        assert [j.status for j in jobs] == ["published", "published", "published"]
        assert [len(_records(db, j.id)) for j in jobs] == [1, 0, 1]
