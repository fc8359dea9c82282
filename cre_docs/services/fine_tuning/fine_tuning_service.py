"""Fine-tuning coordination: trigger checks, job lifecycle and model deployment.

A job only moves forward::

    pending -> uploading -> running -> succeeded | failed | cancelled

Terminal jobs are never touched again, which makes status polling
idempotent.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.core.config import settings
from cre_docs.core.exceptions import (
    APIClientError,
    AppError,
    AuthenticationError,
    FineTuningError,
    InvalidStateTransition,
    JobNotFoundError,
    ModelDeploymentError,
    ValidationError,
)
from cre_docs.core.openai_client import OpenAIFineTuningClient, get_openai_client
from cre_docs.database.models import FineTuningJob, ModelVersion
from cre_docs.repositories.fine_tuning_job_repository import FineTuningJobRepository
from cre_docs.repositories.model_version_repository import ModelVersionRepository
from cre_docs.repositories.training_document_repository import TrainingDocumentRepository
from cre_docs.repositories.training_metrics_repository import TrainingMetricsRepository
from cre_docs.repositories.training_trigger_repository import TrainingTriggerRepository
from cre_docs.schemas.documents import DeploymentStatus
from cre_docs.services.fine_tuning.training_export_service import TrainingExportService
from cre_docs.utils.logging import get_logger

LOGGER = get_logger(__name__)

PENDING = "pending"
UPLOADING = "uploading"
RUNNING = "running"
SUCCEEDED = "succeeded"
FAILED = "failed"
CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({SUCCEEDED, FAILED, CANCELLED})

ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    PENDING: frozenset({UPLOADING, FAILED, CANCELLED}),
    UPLOADING: frozenset({RUNNING, FAILED, CANCELLED}),
    RUNNING: frozenset({RUNNING, SUCCEEDED, FAILED, CANCELLED}),
    SUCCEEDED: frozenset(),
    FAILED: frozenset(),
    CANCELLED: frozenset(),
}

# Remote job statuses mapped onto local ones
REMOTE_STATUS_MAP = {
    "validating_files": RUNNING,
    "queued": RUNNING,
    "running": RUNNING,
    "succeeded": SUCCEEDED,
    "failed": FAILED,
    "cancelled": CANCELLED,
}


def check_transition(current: str, target: str) -> None:
    """Raise if a job may not move from ``current`` to ``target``.

    Raises:
        InvalidStateTransition: On any backward or out-of-order move
    """
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidStateTransition(
            f"Fine-tuning job cannot transition from {current} to {target}"
        )


def describe_remote_failure(raw_error: str) -> str:
    """Annotate moderation/evaluation failures as an upstream infrastructure issue."""
    if "moderation" in raw_error or "eval" in raw_error:
        return (
            f"OpenAI Moderation Failure: {raw_error}. Note: This is an OpenAI infrastructure "
            "issue during safety evaluation, not a data quality issue. The model training may "
            "have completed successfully. Consider retrying or contacting OpenAI support."
        )
    return raw_error


def describe_job_creation_error(error: APIClientError) -> str:
    message = error.message
    if isinstance(error, AuthenticationError):
        return f"Authentication error: {message}. Verify your API key has fine-tuning permissions."
    if "OAuth" in message:
        return (
            "OAuth token error: Fine-tuning requires a project API key (sk-proj-*), "
            "not an OAuth token."
        )
    if "file" in message:
        return f"File error: {message}. The training file may be invalid or not accessible."
    if "billing" in message:
        return f"Billing error: {message}. Check your OpenAI account billing status."
    return f"Failed to create fine-tuning job: {message}"


@dataclass
class TriggerCheckResult:
    should_trigger: bool
    document_type: str
    current_count: int
    trigger_threshold: int
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_id(payload: Any, operation: str) -> str:
    """Return the remote object's ``id``.

    Raises:
        FineTuningError: If the response carries no id
    """
    remote_id = payload.get("id") if isinstance(payload, dict) else None
    if not remote_id:
        raise FineTuningError(f"OpenAI response for {operation} has no id")
    return remote_id


class FineTuningService:
    """Coordinates fine-tuning jobs against the remote training API."""

    def __init__(
        self,
        session: AsyncSession,
        client: Optional[OpenAIFineTuningClient] = None,
        export_service: Optional[TrainingExportService] = None,
    ):
        self.session = session
        self.client = client or get_openai_client()
        self.export_service = export_service or TrainingExportService(session)
        self.job_repo = FineTuningJobRepository(session)
        self.version_repo = ModelVersionRepository(session)
        self.trigger_repo = TrainingTriggerRepository(session)
        self.document_repo = TrainingDocumentRepository(session)
        self.metrics_repo = TrainingMetricsRepository(session)

    async def _get_job(self, job_id: UUID) -> FineTuningJob:
        job = await self.job_repo.get_by_id(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    async def _transition(self, job: FineTuningJob, target: str, **values: Any) -> FineTuningJob:
        check_transition(job.status, target)
        LOGGER.info(
            f"Fine-tuning job {job.id}: {job.status} -> {target}",
            extra={"document_type": job.document_type},
        )
        return await self.job_repo.update(job.id, status=target, **values)

    async def check_fine_tuning_trigger(self, document_type: str) -> TriggerCheckResult:
        """Decide whether enough new verified documents justify a new job."""
        LOGGER.info(f"Checking fine-tuning trigger for: {document_type}")

        trigger = await self.trigger_repo.get_by_document_type(document_type)
        if trigger is None:
            return TriggerCheckResult(
                should_trigger=False,
                document_type=document_type,
                current_count=0,
                trigger_threshold=10,
                reason="Trigger configuration not found",
            )

        if not trigger.auto_trigger_enabled:
            return TriggerCheckResult(
                should_trigger=False,
                document_type=document_type,
                current_count=0,
                trigger_threshold=trigger.trigger_interval,
                reason="Auto-trigger is disabled for this document type",
            )

        current = await self.document_repo.count_verified(document_type)
        since_last = current - trigger.last_trigger_count
        if (
            current >= trigger.next_trigger_at
            and current >= trigger.min_documents_required
            and since_last >= trigger.trigger_interval
        ):
            return TriggerCheckResult(
                should_trigger=True,
                document_type=document_type,
                current_count=current,
                trigger_threshold=trigger.next_trigger_at,
                reason=(
                    f"Reached {current} verified documents "
                    f"(trigger every {trigger.trigger_interval})"
                ),
            )

        return TriggerCheckResult(
            should_trigger=False,
            document_type=document_type,
            current_count=current,
            trigger_threshold=trigger.next_trigger_at,
            reason=f"Current count: {current}, next trigger at: {trigger.next_trigger_at}",
        )

    async def _update_trigger_after_start(self, document_type: str, job_id: UUID) -> None:
        trigger = await self.trigger_repo.get_by_document_type(document_type)
        if trigger is None:
            return
        current = await self.document_repo.count_verified(document_type)
        await self.trigger_repo.update(
            trigger.id,
            last_trigger_count=current,
            next_trigger_at=current + trigger.trigger_interval,
            last_triggered_at=_now(),
            last_job_id=job_id,
            total_triggers=trigger.total_triggers + 1,
        )

    async def _fail_job(self, job: FineTuningJob, message: str) -> None:
        await self._transition(job, FAILED, failed_at=_now(), error_message=message)

    async def start_fine_tuning_job(
        self,
        document_type: str,
        triggered_by: Optional[str] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None,
    ) -> FineTuningJob:
        """Export, upload and launch a fine-tuning job for a document type.

        The local record is created first (``pending``), moves to
        ``uploading`` while the JSONL files are exported and uploaded, and to
        ``running`` once the remote service accepts the job. Any failure on
        the way marks the record ``failed`` and is re-raised.

        Raises:
            FineTuningError: If there is no training data or the remote
                service rejects the job
        """
        LOGGER.info(f"Starting fine-tuning job for: {document_type}")
        hyperparameters = hyperparameters or {"n_epochs": settings.openai.default_epochs}
        base_model = settings.openai.base_model

        job = await self.job_repo.create(
            document_type=document_type,
            status=PENDING,
            base_model=base_model,
            hyperparameters=hyperparameters,
            triggered_by=triggered_by or "manual",
            created_by=triggered_by,
            notes=notes,
        )
        job = await self._transition(job, UPLOADING)

        try:
            export = await self.export_service.export_training_data(document_type)
            if not export.train.content:
                raise FineTuningError("No training data available for export")

            training_file = await self.client.upload_file(
                export.train.content, filename=f"{document_type}_train.jsonl"
            )
            training_file_id = _require_id(training_file, "training file upload")
            validation_file_id = None
            if export.validation.content:
                validation_file = await self.client.upload_file(
                    export.validation.content, filename=f"{document_type}_validation.jsonl"
                )
                validation_file_id = _require_id(validation_file, "validation file upload")

            job = await self.job_repo.update(
                job.id,
                openai_file_id=training_file_id,
                openai_validation_file_id=validation_file_id,
                training_examples_count=export.train_examples,
                validation_examples_count=export.validation_examples,
                training_file_url=export.train.url,
                validation_file_url=export.validation.url,
            )

            try:
                remote_job = await self.client.create_fine_tuning_job(
                    training_file=training_file_id,
                    model=base_model,
                    hyperparameters=hyperparameters,
                    validation_file=validation_file_id,
                )
            except APIClientError as e:
                LOGGER.error("Failed to create OpenAI fine-tuning job", exc_info=True)
                raise FineTuningError(describe_job_creation_error(e), e) from e
            remote_job_id = _require_id(remote_job, "fine-tuning job creation")

        except AppError as e:
            await self._fail_job(job, e.message)
            raise

        except Exception as e:
            LOGGER.error(f"Unexpected error starting fine-tuning job {job.id}", exc_info=True)
            message = f"Failed to start fine-tuning job: {str(e)}"
            await self._fail_job(job, message)
            raise FineTuningError(message, e) from e

        LOGGER.info(f"OpenAI job created: {remote_job_id}")
        job = await self._transition(
            job, RUNNING, openai_job_id=remote_job_id, started_at=_now()
        )

        await self._update_trigger_after_start(document_type, job.id)
        await self.metrics_repo.record_training_run(document_type)

        LOGGER.info(f"Fine-tuning job started successfully: {job.id}")
        return job

    async def update_fine_tuning_job_status(self, job_id: UUID) -> FineTuningJob:
        """Poll the remote job and move the local record forward.

        Jobs already in a terminal state are returned unchanged without a
        remote call.

        Raises:
            JobNotFoundError: If the local job does not exist
            FineTuningError: If the job was never submitted or the remote
                job cannot be found
        """
        job = await self._get_job(job_id)
        if job.status in TERMINAL_STATUSES:
            LOGGER.info(f"Job {job_id} already {job.status}, nothing to update")
            return job

        if not job.openai_job_id:
            raise FineTuningError(f"Job has no OpenAI job ID: {job_id}")

        try:
            remote_job = await self.client.retrieve_fine_tuning_job(job.openai_job_id)
        except AuthenticationError as e:
            raise FineTuningError(
                f"Authentication error: {e.message}. "
                f"Check that your API key has fine-tuning permissions.",
                e,
            ) from e
        except APIClientError as e:
            if e.status_code == 404:
                raise FineTuningError(
                    f"OpenAI job {job.openai_job_id} not found. It may have been deleted "
                    f"or belongs to a different project.",
                    e,
                ) from e
            raise

        remote_status = remote_job.get("status")
        LOGGER.info(f"OpenAI job status: {remote_status}", extra={"job_id": str(job_id)})
        target = REMOTE_STATUS_MAP.get(remote_status, RUNNING)

        values: Dict[str, Any] = {"metrics": remote_job}
        if remote_job.get("fine_tuned_model"):
            values["fine_tuned_model_id"] = remote_job["fine_tuned_model"]
        if remote_job.get("trained_tokens"):
            values["trained_tokens"] = remote_job["trained_tokens"]

        if target == SUCCEEDED:
            values["completed_at"] = _now()
        elif target == FAILED:
            raw_error = (remote_job.get("error") or {}).get("message") or "Fine-tuning failed"
            values["failed_at"] = _now()
            values["error_message"] = describe_remote_failure(raw_error)
            if values["error_message"] != raw_error:
                LOGGER.warning("Moderation evaluation failure detected on the OpenAI side")
        elif target == CANCELLED:
            values["failed_at"] = _now()
            values["error_message"] = "Job was cancelled"

        if job.status == UPLOADING and target != RUNNING:
            # Submitted but never observed running
            job = await self._transition(job, RUNNING)
        return await self._transition(job, target, **values)

    async def cancel_fine_tuning_job(self, job_id: UUID) -> FineTuningJob:
        job = await self._get_job(job_id)
        check_transition(job.status, CANCELLED)
        if job.openai_job_id:
            await self.client.cancel_fine_tuning_job(job.openai_job_id)

        job = await self._transition(
            job, CANCELLED, failed_at=_now(), error_message="Job cancelled by user"
        )
        LOGGER.info(f"Job cancelled: {job_id}")
        return job

    async def deploy_fine_tuned_model(
        self,
        job_id: UUID,
        deployment_status: Union[DeploymentStatus, str] = DeploymentStatus.ACTIVE,
        traffic_percentage: int = 100,
        notes: Optional[str] = None,
    ) -> ModelVersion:
        """Create a model version from a succeeded job.

        Activating supersedes the previous active version of the same
        document type atomically.

        Raises:
            ValidationError: If the deployment status is not a known one
            JobNotFoundError: If the job does not exist
            ModelDeploymentError: If the job did not succeed or has no model
        """
        try:
            status = DeploymentStatus(deployment_status)
        except ValueError as e:
            allowed = ", ".join(s.value for s in DeploymentStatus)
            raise ValidationError(
                f"Invalid deployment status: {deployment_status}. Expected one of: {allowed}", e
            ) from e

        LOGGER.info(f"Deploying fine-tuned model from job: {job_id}")
        job = await self._get_job(job_id)
        if job.status != SUCCEEDED:
            raise ModelDeploymentError(
                f"Job is not completed successfully. Status: {job.status}"
            )
        if not job.fine_tuned_model_id:
            raise ModelDeploymentError("Job has no fine-tuned model ID")

        version = await self.version_repo.create_version(
            document_type=job.document_type,
            model_id=job.fine_tuned_model_id,
            fine_tuning_job_id=job.id,
            deployment_status=status.value,
            traffic_percentage=traffic_percentage,
            notes=notes,
        )
        LOGGER.info(
            f"Model deployed successfully: {version.id}",
            extra={"document_type": job.document_type, "version": version.version_number},
        )
        return version

    async def monitor_active_jobs(self) -> Dict[str, Any]:
        """Poll every non-terminal job once.

        A failure on one job is logged and does not stop the others.
        """
        jobs = await self.job_repo.list_active_jobs()
        if not jobs:
            LOGGER.info("No active jobs to monitor")
            return {"updated_jobs": [], "completed": 0, "failed": 0, "still_running": 0}

        LOGGER.info(f"Monitoring {len(jobs)} active jobs...")
        updated: List[FineTuningJob] = []
        completed = failed = still_running = 0

        for job in jobs:
            try:
                current = await self.update_fine_tuning_job_status(job.id)
            except AppError as e:
                LOGGER.error(f"Error updating job {job.id}: {e.message}")
                continue

            updated.append(current)
            if current.status == SUCCEEDED:
                completed += 1
                if settings.processing.auto_deploy_models:
                    LOGGER.info(f"Auto-deploying model for job: {current.id}")
                    try:
                        await self.deploy_fine_tuned_model(
                            current.id, notes="Auto-deployed after successful training"
                        )
                    except AppError as e:
                        LOGGER.error(
                            f"Auto-deploy failed for job {current.id}: {e.message}", exc_info=True
                        )
            elif current.status in (FAILED, CANCELLED):
                failed += 1
            else:
                still_running += 1

        LOGGER.info(
            f"Monitoring complete: {completed} completed, {failed} failed, "
            f"{still_running} still running"
        )
        return {
            "updated_jobs": updated,
            "completed": completed,
            "failed": failed,
            "still_running": still_running,
        }

    async def activate_model_version(self, version_id: UUID) -> ModelVersion:
        """Promote a deployed version (e.g. one in ``testing``) to ``active``.

        Raises:
            JobNotFoundError: If the version does not exist
        """
        version = await self.version_repo.activate(version_id)
        if version is None:
            raise JobNotFoundError(f"Model version not found: {version_id}")
        LOGGER.info(
            f"Model version {version.version_number} activated",
            extra={"document_type": version.document_type},
        )
        return version

    async def get_active_model(self, document_type: str) -> Optional[ModelVersion]:
        return await self.version_repo.get_active(document_type)

    async def list_jobs(self, document_type: Optional[str] = None) -> List[FineTuningJob]:
        return await self.job_repo.list_jobs(document_type)

    async def list_model_versions(self, document_type: Optional[str] = None) -> List[ModelVersion]:
        return await self.version_repo.list_versions(document_type)
