from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from lifecycle.api.errors import error_response
from lifecycle.schemas.records import (
    AllowedActionsOut,
    ApplicationCreateRequest,
    ApplicationStatusName,
    JobPostingCreateRequest,
    ModerationStatusName,
    RecordOut,
)
from lifecycle.schemas.transitions import ErrorOut
from lifecycle.services.errors import ErrorKind, make_error
from lifecycle.services.lifecycle import LifecycleService, get_lifecycle_service
from lifecycle.services.records import ApplicationStatus, ModerationStatus
from lifecycle.services.store import StoreUnavailableError

router = APIRouter()


@router.get("/records/{record_id}", response_model=RecordOut, responses={404: {"model": ErrorOut}})
async def get_record(
    record_id: str,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> RecordOut | JSONResponse:
    result = await service.get_record(record_id)
    if not result.ok or result.record is None:
        return error_response(result.error)
    return RecordOut.from_record(result.record)


@router.get("/records/{record_id}/allowed-actions", response_model=AllowedActionsOut)
async def get_allowed_actions(
    record_id: str,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> AllowedActionsOut | JSONResponse:
    result, actions = await service.get_allowed_actions(record_id)
    if not result.ok or result.record is None:
        return error_response(result.error)
    return AllowedActionsOut(
        record_id=record_id,
        status=result.record.status.value,
        actions=[action.value for action in actions],
    )


@router.get("/applications", response_model=list[RecordOut])
async def list_applications(
    service: LifecycleService = Depends(get_lifecycle_service),
    job_id: str | None = Query(default=None, min_length=1),
    application_status: ApplicationStatusName | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[RecordOut] | JSONResponse:
    try:
        rows = await service.list_applications(
            job_id=job_id,
            status=ApplicationStatus(application_status) if application_status else None,
            limit=limit,
            offset=offset,
        )
    except StoreUnavailableError:
        return error_response(make_error(ErrorKind.STORE_UNAVAILABLE))
    return [RecordOut.from_record(row) for row in rows]


@router.post("/applications", response_model=RecordOut, status_code=status.HTTP_201_CREATED)
async def register_application(
    payload: ApplicationCreateRequest,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> RecordOut | JSONResponse:
    result = await service.register_application(
        job_id=payload.job_id,
        candidate_id=payload.candidate_id,
        match_score=payload.match_score,
        record_id=payload.id,
    )
    if not result.ok or result.record is None:
        return error_response(result.error)
    return RecordOut.from_record(result.record)


@router.get("/job-postings", response_model=list[RecordOut])
async def list_moderation_queue(
    service: LifecycleService = Depends(get_lifecycle_service),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[RecordOut] | JSONResponse:
    try:
        rows = await service.list_moderation_queue(limit=limit, offset=offset)
    except StoreUnavailableError:
        return error_response(make_error(ErrorKind.STORE_UNAVAILABLE))
    return [RecordOut.from_record(row) for row in rows]


@router.post("/job-postings", response_model=RecordOut, status_code=status.HTTP_201_CREATED)
async def register_job_posting(
    payload: JobPostingCreateRequest,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> RecordOut | JSONResponse:
    result = await service.register_job_posting(
        title=payload.title,
        company=payload.company,
        recruiter_id=payload.recruiter_id,
        location=payload.location,
        flag_count=payload.flag_count,
        flag_reasons=payload.flag_reasons,
        record_id=payload.id,
    )
    if not result.ok or result.record is None:
        return error_response(result.error)
    return RecordOut.from_record(result.record)


@router.get("/moderation/history", response_model=list[RecordOut])
async def list_moderation_history(
    service: LifecycleService = Depends(get_lifecycle_service),
    moderation_status: ModerationStatusName | None = Query(default=None, alias="status"),
    moderator_id: str | None = Query(default=None, min_length=1),
    q: str | None = Query(default=None, min_length=1),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[RecordOut] | JSONResponse:
    try:
        rows = await service.list_moderation_history(
            status=ModerationStatus(moderation_status) if moderation_status else None,
            moderator_id=moderator_id,
            q=q,
            limit=limit,
            offset=offset,
        )
    except StoreUnavailableError:
        return error_response(make_error(ErrorKind.STORE_UNAVAILABLE))
    return [RecordOut.from_record(row) for row in rows]
