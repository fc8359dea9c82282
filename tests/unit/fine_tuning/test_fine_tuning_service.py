"""Unit tests for the fine-tuning job lifecycle."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from cre_docs.core.config import settings
from cre_docs.core.exceptions import (
    APIClientError,
    DatabaseError,
    FineTuningError,
    InvalidStateTransition,
    JobNotFoundError,
    ModelDeploymentError,
    ValidationError,
)
from cre_docs.services.fine_tuning import (
    ALLOWED_TRANSITIONS,
    ExportResult,
    FineTuningService,
    check_transition,
    describe_remote_failure,
)
from cre_docs.services.fine_tuning.training_export_service import SplitExport


def _job(status: str, **values) -> SimpleNamespace:
    defaults = {
        "id": uuid4(),
        "document_type": "rent_roll",
        "status": status,
        "openai_job_id": "ftjob-123",
        "fine_tuned_model_id": None,
        "training_examples_count": 0,
    }
    defaults.update(values)
    return SimpleNamespace(**defaults)


def _merging_update(jobs: dict):
    """Side effect for job_repo.update that keeps one record per job id."""

    async def update(job_id, **values):
        job = jobs.setdefault(job_id, SimpleNamespace(id=job_id, document_type="rent_roll"))
        for key, value in values.items():
            setattr(job, key, value)
        return job

    return update


@pytest.fixture
def remote_client():
    return AsyncMock()


@pytest.fixture
def export_service():
    return AsyncMock()


@pytest.fixture
def fine_tuning_service(mock_session, remote_client, export_service):
    service = FineTuningService(mock_session, client=remote_client, export_service=export_service)
    service.job_repo = AsyncMock()
    service.job_repo.update.side_effect = _merging_update({})
    service.version_repo = AsyncMock()
    service.trigger_repo = AsyncMock()
    service.document_repo = AsyncMock()
    service.metrics_repo = AsyncMock()
    return service


class TestTransitions:
    """Test suite for the forward-only state machine."""

    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "uploading"),
            ("uploading", "running"),
            ("running", "running"),
            ("running", "succeeded"),
            ("running", "failed"),
            ("pending", "cancelled"),
        ],
    )
    def test_allowed(self, current, target):
        check_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("succeeded", "running"),
            ("failed", "running"),
            ("cancelled", "succeeded"),
            ("running", "uploading"),
            ("running", "pending"),
            ("pending", "succeeded"),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(InvalidStateTransition):
            check_transition(current, target)

    def test_terminal_states_have_no_exits(self):
        for status in ("succeeded", "failed", "cancelled"):
            assert not ALLOWED_TRANSITIONS[status]


class TestDescribeRemoteFailure:
    def test_moderation_failure_is_annotated(self):
        message = describe_remote_failure("The job failed due to moderation eval")
        assert message.startswith("OpenAI Moderation Failure:")
        assert "not a data quality issue" in message

    def test_other_failures_pass_through(self):
        assert describe_remote_failure("Invalid file format") == "Invalid file format"


class TestUpdateJobStatus:
    """Test suite for status polling."""

    @pytest.mark.asyncio
    async def test_terminal_job_is_not_polled(self, fine_tuning_service, remote_client):
        job = _job("succeeded", fine_tuned_model_id="ft:gpt-4o:cre")
        fine_tuning_service.job_repo.get_by_id.return_value = job

        first = await fine_tuning_service.update_fine_tuning_job_status(job.id)
        second = await fine_tuning_service.update_fine_tuning_job_status(job.id)

        assert first is job and second is job
        remote_client.retrieve_fine_tuning_job.assert_not_awaited()
        fine_tuning_service.job_repo.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_running_job_succeeds(self, fine_tuning_service, remote_client):
        job = _job("running")
        fine_tuning_service.job_repo.get_by_id.return_value = job
        remote_client.retrieve_fine_tuning_job.return_value = {
            "status": "succeeded",
            "fine_tuned_model": "ft:gpt-4o:cre:abc",
            "trained_tokens": 5000,
        }

        updated = await fine_tuning_service.update_fine_tuning_job_status(job.id)

        assert updated.status == "succeeded"
        assert updated.fine_tuned_model_id == "ft:gpt-4o:cre:abc"
        assert updated.trained_tokens == 5000
        assert updated.completed_at is not None

    @pytest.mark.asyncio
    async def test_queued_remote_status_keeps_job_running(self, fine_tuning_service, remote_client):
        job = _job("running")
        fine_tuning_service.job_repo.get_by_id.return_value = job
        remote_client.retrieve_fine_tuning_job.return_value = {"status": "queued"}

        updated = await fine_tuning_service.update_fine_tuning_job_status(job.id)

        assert updated.status == "running"

    @pytest.mark.asyncio
    async def test_remote_failure_is_recorded(self, fine_tuning_service, remote_client):
        job = _job("running")
        fine_tuning_service.job_repo.get_by_id.return_value = job
        remote_client.retrieve_fine_tuning_job.return_value = {
            "status": "failed",
            "error": {"message": "Training file has too few examples"},
        }

        updated = await fine_tuning_service.update_fine_tuning_job_status(job.id)

        assert updated.status == "failed"
        assert updated.error_message == "Training file has too few examples"

    @pytest.mark.asyncio
    async def test_missing_remote_job(self, fine_tuning_service, remote_client):
        job = _job("running")
        fine_tuning_service.job_repo.get_by_id.return_value = job
        remote_client.retrieve_fine_tuning_job.side_effect = APIClientError("gone", status_code=404)

        with pytest.raises(FineTuningError) as exc_info:
            await fine_tuning_service.update_fine_tuning_job_status(job.id)
        assert "not found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unknown_job(self, fine_tuning_service):
        fine_tuning_service.job_repo.get_by_id.return_value = None
        with pytest.raises(JobNotFoundError):
            await fine_tuning_service.update_fine_tuning_job_status(uuid4())


class TestStartJob:
    """Test suite for launching jobs."""

    @pytest.fixture
    def export_result(self):
        return ExportResult(
            document_type="rent_roll",
            train=SplitExport(split="train", examples=40, path="p/train", url="u/train", content=b"{}"),
            validation=SplitExport(split="validation", examples=10, path="p/val", url="u/val", content=b"{}"),
        )

    @pytest.mark.asyncio
    async def test_start_moves_job_to_running(
        self, fine_tuning_service, remote_client, export_service, export_result
    ):
        created = _job("pending", openai_job_id=None)
        fine_tuning_service.job_repo.create.return_value = created
        export_service.export_training_data.return_value = export_result
        remote_client.upload_file.side_effect = [{"id": "file-train"}, {"id": "file-val"}]
        remote_client.create_fine_tuning_job.return_value = {"id": "ftjob-999"}
        fine_tuning_service.trigger_repo.get_by_document_type.return_value = None

        job = await fine_tuning_service.start_fine_tuning_job("rent_roll", triggered_by="manual")

        assert job.status == "running"
        assert job.openai_job_id == "ftjob-999"
        statuses = [call.kwargs.get("status") for call in fine_tuning_service.job_repo.update.call_args_list]
        assert statuses == ["uploading", None, "running"]
        create_kwargs = remote_client.create_fine_tuning_job.call_args.kwargs
        assert create_kwargs["training_file"] == "file-train"
        assert create_kwargs["validation_file"] == "file-val"
        fine_tuning_service.metrics_repo.record_training_run.assert_awaited_once_with("rent_roll")

    @pytest.mark.asyncio
    async def test_remote_rejection_fails_job(
        self, fine_tuning_service, remote_client, export_service, export_result
    ):
        fine_tuning_service.job_repo.create.return_value = _job("pending", openai_job_id=None)
        export_service.export_training_data.return_value = export_result
        remote_client.upload_file.return_value = {"id": "file-x"}
        remote_client.create_fine_tuning_job.side_effect = APIClientError(
            "billing hard limit reached", status_code=400
        )

        with pytest.raises(FineTuningError) as exc_info:
            await fine_tuning_service.start_fine_tuning_job("rent_roll")

        assert exc_info.value.message.startswith("Billing error:")
        last_update = fine_tuning_service.job_repo.update.call_args_list[-1]
        assert last_update.kwargs["status"] == "failed"

    @pytest.mark.asyncio
    async def test_no_training_data(self, fine_tuning_service, remote_client, export_service):
        fine_tuning_service.job_repo.create.return_value = _job("pending", openai_job_id=None)
        export_service.export_training_data.return_value = ExportResult(
            document_type="rent_roll",
            train=SplitExport(split="train"),
            validation=SplitExport(split="validation"),
        )

        with pytest.raises(FineTuningError):
            await fine_tuning_service.start_fine_tuning_job("rent_roll")
        remote_client.upload_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upload_without_file_id_fails_job(
        self, fine_tuning_service, remote_client, export_service, export_result
    ):
        fine_tuning_service.job_repo.create.return_value = _job("pending", openai_job_id=None)
        export_service.export_training_data.return_value = export_result
        remote_client.upload_file.return_value = {"object": "file"}

        with pytest.raises(FineTuningError) as exc_info:
            await fine_tuning_service.start_fine_tuning_job("rent_roll")

        assert "training file upload" in exc_info.value.message
        last_update = fine_tuning_service.job_repo.update.call_args_list[-1]
        assert last_update.kwargs["status"] == "failed"
        remote_client.create_fine_tuning_job.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remote_job_without_id_fails_job(
        self, fine_tuning_service, remote_client, export_service, export_result
    ):
        fine_tuning_service.job_repo.create.return_value = _job("pending", openai_job_id=None)
        export_service.export_training_data.return_value = export_result
        remote_client.upload_file.return_value = {"id": "file-x"}
        remote_client.create_fine_tuning_job.return_value = {"status": "queued"}

        with pytest.raises(FineTuningError):
            await fine_tuning_service.start_fine_tuning_job("rent_roll")

        statuses = [call.kwargs.get("status") for call in fine_tuning_service.job_repo.update.call_args_list]
        assert statuses == ["uploading", None, "failed"]

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(
        self, fine_tuning_service, remote_client, export_service
    ):
        fine_tuning_service.job_repo.create.return_value = _job("pending", openai_job_id=None)
        export_service.export_training_data.side_effect = RuntimeError("export crashed")

        with pytest.raises(FineTuningError) as exc_info:
            await fine_tuning_service.start_fine_tuning_job("rent_roll")

        assert isinstance(exc_info.value.original_error, RuntimeError)
        last_update = fine_tuning_service.job_repo.update.call_args_list[-1]
        assert last_update.kwargs["status"] == "failed"
        assert "export crashed" in last_update.kwargs["error_message"]


class TestDeployAndMonitor:
    """Test suite for deployment and monitoring."""

    @pytest.mark.asyncio
    async def test_deploy_requires_succeeded_job(self, fine_tuning_service):
        fine_tuning_service.job_repo.get_by_id.return_value = _job("running")
        with pytest.raises(ModelDeploymentError):
            await fine_tuning_service.deploy_fine_tuned_model(uuid4())

    @pytest.mark.asyncio
    async def test_deploy_requires_model_id(self, fine_tuning_service):
        fine_tuning_service.job_repo.get_by_id.return_value = _job("succeeded")
        with pytest.raises(ModelDeploymentError):
            await fine_tuning_service.deploy_fine_tuned_model(uuid4())

    @pytest.mark.asyncio
    async def test_deploy_creates_active_version(self, fine_tuning_service):
        job = _job("succeeded", fine_tuned_model_id="ft:gpt-4o:cre:abc")
        fine_tuning_service.job_repo.get_by_id.return_value = job
        fine_tuning_service.version_repo.create_version.return_value = SimpleNamespace(
            id=uuid4(), version_number=2, deployment_status="active"
        )

        version = await fine_tuning_service.deploy_fine_tuned_model(job.id)

        assert version.version_number == 2
        kwargs = fine_tuning_service.version_repo.create_version.call_args.kwargs
        assert kwargs["model_id"] == "ft:gpt-4o:cre:abc"
        assert kwargs["deployment_status"] == "active"

    @pytest.mark.asyncio
    async def test_deploy_accepts_testing_status(self, fine_tuning_service):
        job = _job("succeeded", fine_tuned_model_id="ft:gpt-4o:cre:abc")
        fine_tuning_service.job_repo.get_by_id.return_value = job

        await fine_tuning_service.deploy_fine_tuned_model(job.id, deployment_status="testing")

        kwargs = fine_tuning_service.version_repo.create_version.call_args.kwargs
        assert kwargs["deployment_status"] == "testing"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["ACTIVE", "live", ""])
    async def test_deploy_rejects_unknown_status(self, fine_tuning_service, status):
        with pytest.raises(ValidationError) as exc_info:
            await fine_tuning_service.deploy_fine_tuned_model(uuid4(), deployment_status=status)

        assert "Invalid deployment status" in exc_info.value.message
        fine_tuning_service.version_repo.create_version.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_terminal_job_is_rejected(self, fine_tuning_service, remote_client):
        fine_tuning_service.job_repo.get_by_id.return_value = _job("succeeded")
        with pytest.raises(InvalidStateTransition):
            await fine_tuning_service.cancel_fine_tuning_job(uuid4())
        remote_client.cancel_fine_tuning_job.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_monitor_continues_past_failures(self, fine_tuning_service):
        jobs = [_job("running"), _job("running")]
        fine_tuning_service.job_repo.list_active_jobs.return_value = jobs
        succeeded = _job("succeeded")

        with patch.object(
            fine_tuning_service,
            "update_fine_tuning_job_status",
            AsyncMock(side_effect=[FineTuningError("boom"), succeeded]),
        ), patch.object(fine_tuning_service, "deploy_fine_tuned_model", AsyncMock()) as deploy:
            summary = await fine_tuning_service.monitor_active_jobs()

        assert summary["completed"] == 1
        assert summary["updated_jobs"] == [succeeded]
        deploy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_auto_deploy_does_not_stop_monitoring(self, fine_tuning_service):
        jobs = [_job("running"), _job("running")]
        fine_tuning_service.job_repo.list_active_jobs.return_value = jobs
        first, second = _job("succeeded"), _job("succeeded")

        with patch.object(settings.processing, "auto_deploy_models", True), patch.object(
            fine_tuning_service,
            "update_fine_tuning_job_status",
            AsyncMock(side_effect=[first, second]),
        ) as poll, patch.object(
            fine_tuning_service,
            "deploy_fine_tuned_model",
            AsyncMock(side_effect=[DatabaseError("model_versions unavailable"), None]),
        ) as deploy:
            summary = await fine_tuning_service.monitor_active_jobs()

        assert poll.await_count == 2
        assert deploy.await_count == 2
        assert summary["completed"] == 2
        assert summary["updated_jobs"] == [first, second]

    @pytest.mark.asyncio
    async def test_activate_model_version(self, fine_tuning_service):
        version_id = uuid4()
        fine_tuning_service.version_repo.activate.return_value = SimpleNamespace(
            id=version_id, version_number=3, document_type="rent_roll", deployment_status="active"
        )

        version = await fine_tuning_service.activate_model_version(version_id)

        assert version.deployment_status == "active"
        fine_tuning_service.version_repo.activate.assert_awaited_once_with(version_id)

    @pytest.mark.asyncio
    async def test_activate_unknown_version(self, fine_tuning_service):
        fine_tuning_service.version_repo.activate.return_value = None
        with pytest.raises(JobNotFoundError):
            await fine_tuning_service.activate_model_version(uuid4())
