from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from lifecycle.api.errors import error_response
from lifecycle.schemas.records import HistoryEntryOut, RecordOut
from lifecycle.schemas.transitions import (
    BulkOutcomeOut,
    BulkTransitionOut,
    BulkTransitionRequest,
    ErrorOut,
    NotesOkOut,
    NotesRequest,
    TransitionOkOut,
    TransitionRequest,
)
from lifecycle.services.bulk import BulkCoordinator, get_bulk_coordinator
from lifecycle.services.lifecycle import LifecycleService, OperationResult, get_lifecycle_service

router = APIRouter()

ERROR_RESPONSES = {
    403: {"model": ErrorOut},
    404: {"model": ErrorOut},
    409: {"model": ErrorOut},
    422: {"model": ErrorOut},
    503: {"model": ErrorOut},
}


@router.post("/transition", response_model=TransitionOkOut, responses=ERROR_RESPONSES)
async def transition(
    payload: TransitionRequest,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> TransitionOkOut | JSONResponse:
    result = await service.transition(
        payload.record_id,
        payload.action,
        payload.actor_id,
        payload.actor_role,
        reason=payload.reason,
        details=payload.details,
    )
    if not result.ok or result.record is None:
        return error_response(result.error)
    return TransitionOkOut(new_state=RecordOut.from_record(result.record))


@router.post("/bulk-transition", response_model=BulkTransitionOut)
async def bulk_transition(
    payload: BulkTransitionRequest,
    coordinator: BulkCoordinator = Depends(get_bulk_coordinator),
) -> BulkTransitionOut:
    outcome = await coordinator.bulk_transition(
        payload.record_ids,
        payload.action,
        payload.actor_id,
        payload.actor_role,
        reason=payload.reason,
        details=payload.details,
    )
    return BulkTransitionOut(
        results={record_id: _bulk_outcome(result) for record_id, result in outcome.results.items()},
        summary=outcome.summary(),
        succeeded=len(outcome.succeeded),
        failed=len(outcome.failed),
    )


@router.post("/notes", response_model=NotesOkOut, responses=ERROR_RESPONSES)
async def update_notes(
    payload: NotesRequest,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> NotesOkOut | JSONResponse:
    result = await service.update_notes(payload.record_id, payload.actor_id, payload.notes)
    if not result.ok or result.record is None:
        return error_response(result.error)
    return NotesOkOut(version=result.record.version)


@router.get("/history/{record_id}", response_model=list[HistoryEntryOut], responses=ERROR_RESPONSES)
async def get_history(
    record_id: str,
    service: LifecycleService = Depends(get_lifecycle_service),
) -> list[HistoryEntryOut] | JSONResponse:
    result = await service.get_history(record_id)
    if not result.ok:
        return error_response(result.error)
    return [HistoryEntryOut(**entry.to_dict()) for entry in result.history]


def _bulk_outcome(result: OperationResult) -> BulkOutcomeOut:
    if result.ok and result.record is not None:
        return BulkOutcomeOut(status="ok", new_status=result.record.status.value, version=result.record.version)
    error = result.error
    return BulkOutcomeOut(
        status="error",
        kind=error.kind.value if error else None,
        message=error.message if error else None,
    )
