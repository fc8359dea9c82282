"""Fine-tuning job and model version endpoints."""

from typing import Annotated, Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cre_docs.api.v1.endpoints.documents import parse_document_type
from cre_docs.core.database import get_async_session as get_session
from cre_docs.schemas.training import (
    ApiResponse,
    DeployRequest,
    FineTuningJobResponse,
    ModelVersionResponse,
    StartFineTuningRequest,
)
from cre_docs.services.fine_tuning import FineTuningService
from cre_docs.services.training import estimate_training_time
from cre_docs.utils.logging import get_logger
from cre_docs.utils.responses import create_api_response

LOGGER = get_logger(__name__)

router = APIRouter()


async def get_fine_tuning_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> FineTuningService:
    return FineTuningService(db_session)


def _job(job: Any) -> Dict[str, Any]:
    return FineTuningJobResponse.model_validate(job).model_dump(mode="json")


def _model_version(version: Any) -> Dict[str, Any]:
    return ModelVersionResponse.model_validate(version).model_dump(mode="json")


@router.post(
    "/start",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a fine-tuning job",
    operation_id="start_fine_tuning_job",
)
async def start_job(
    request_body: StartFineTuningRequest,
    fine_tuning_service: Annotated[FineTuningService, Depends(get_fine_tuning_service)] = None,
) -> ApiResponse:
    """Export the verified corpus of a type and launch a remote training job."""
    document_type = parse_document_type(request_body.document_type).value
    job = await fine_tuning_service.start_fine_tuning_job(
        document_type=document_type,
        triggered_by=request_body.triggered_by,
        hyperparameters=request_body.hyperparameters,
        notes=request_body.notes,
    )
    return create_api_response(
        data={
            "job": _job(job),
            "estimated_time": estimate_training_time(job.training_examples_count),
        },
        message=f"Fine-tuning job started: {job.id}",
    )


@router.get(
    "/status/{job_id}",
    response_model=ApiResponse,
    summary="Refresh a job from the remote training service",
    operation_id="get_fine_tuning_job_status",
)
async def get_job_status(
    job_id: UUID,
    fine_tuning_service: Annotated[FineTuningService, Depends(get_fine_tuning_service)] = None,
) -> ApiResponse:
    """Poll a job once. Jobs already in a terminal state are returned as stored."""
    job = await fine_tuning_service.update_fine_tuning_job_status(job_id)
    return create_api_response(data=_job(job), message=f"Job status: {job.status}")


@router.post(
    "/cancel/{job_id}",
    response_model=ApiResponse,
    summary="Cancel a fine-tuning job",
    operation_id="cancel_fine_tuning_job",
)
async def cancel_job(
    job_id: UUID,
    fine_tuning_service: Annotated[FineTuningService, Depends(get_fine_tuning_service)] = None,
) -> ApiResponse:
    job = await fine_tuning_service.cancel_fine_tuning_job(job_id)
    return create_api_response(data=_job(job), message="Job cancelled")


@router.post(
    "/deploy/{job_id}",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Deploy the model produced by a job",
    operation_id="deploy_fine_tuned_model",
)
async def deploy_model(
    job_id: UUID,
    request_body: Optional[DeployRequest] = None,
    fine_tuning_service: Annotated[FineTuningService, Depends(get_fine_tuning_service)] = None,
) -> ApiResponse:
    options = request_body or DeployRequest()
    version = await fine_tuning_service.deploy_fine_tuned_model(
        job_id,
        deployment_status=options.deployment_status,
        traffic_percentage=options.traffic_percentage,
        notes=options.notes,
    )
    return create_api_response(
        data=_model_version(version),
        message=f"Model version {version.version_number} deployed as {version.deployment_status}",
    )


@router.post(
    "/models/{version_id}/activate",
    response_model=ApiResponse,
    summary="Make a model version the active one for its document type",
    operation_id="activate_model_version",
)
async def activate_model(
    version_id: UUID,
    fine_tuning_service: Annotated[FineTuningService, Depends(get_fine_tuning_service)] = None,
) -> ApiResponse:
    version = await fine_tuning_service.activate_model_version(version_id)
    return create_api_response(
        data=_model_version(version),
        message=f"Model version {version.version_number} is now active for {version.document_type}",
    )


@router.post(
    "/monitor",
    response_model=ApiResponse,
    summary="Poll every active fine-tuning job",
    operation_id="monitor_fine_tuning_jobs",
)
async def monitor_jobs(
    fine_tuning_service: Annotated[FineTuningService, Depends(get_fine_tuning_service)] = None,
) -> ApiResponse:
    summary = await fine_tuning_service.monitor_active_jobs()
    return create_api_response(
        data={**summary, "updated_jobs": [_job(job) for job in summary["updated_jobs"]]},
        message=(
            f"Monitoring complete: {summary['completed']} completed, "
            f"{summary['failed']} failed, {summary['still_running']} still running"
        ),
    )


@router.get(
    "/jobs",
    response_model=ApiResponse,
    summary="List fine-tuning jobs",
    operation_id="list_fine_tuning_jobs",
)
async def list_jobs(
    document_type: Optional[str] = Query(None),
    fine_tuning_service: Annotated[FineTuningService, Depends(get_fine_tuning_service)] = None,
) -> ApiResponse:
    resolved_type = parse_document_type(document_type).value if document_type else None
    jobs = await fine_tuning_service.list_jobs(resolved_type)
    return create_api_response(
        data={"jobs": [_job(job) for job in jobs], "total": len(jobs)},
        message="Jobs retrieved successfully",
    )


@router.get(
    "/models",
    response_model=ApiResponse,
    summary="List model versions",
    operation_id="list_model_versions",
)
async def list_models(
    document_type: Optional[str] = Query(None),
    fine_tuning_service: Annotated[FineTuningService, Depends(get_fine_tuning_service)] = None,
) -> ApiResponse:
    resolved_type = parse_document_type(document_type).value if document_type else None
    versions = await fine_tuning_service.list_model_versions(resolved_type)
    active = None
    if resolved_type:
        active_version = await fine_tuning_service.get_active_model(resolved_type)
        active = _model_version(active_version) if active_version else None
    return create_api_response(
        data={"models": [_model_version(version) for version in versions], "active": active},
        message="Model versions retrieved successfully",
    )


@router.get(
    "/trigger/{document_type}",
    response_model=ApiResponse,
    summary="Check whether a document type is due for fine-tuning",
    operation_id="check_fine_tuning_trigger",
)
async def check_trigger(
    document_type: str,
    fine_tuning_service: Annotated[FineTuningService, Depends(get_fine_tuning_service)] = None,
) -> ApiResponse:
    resolved_type = parse_document_type(document_type).value
    result = await fine_tuning_service.check_fine_tuning_trigger(resolved_type)
    return create_api_response(data=result.to_dict(), message=result.reason)
