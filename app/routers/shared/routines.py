import uuid

from fastapi import APIRouter, Depends, Path, Request, status

from app.schemas.routine_schemas import RoutineResponse
from app.services.routine_service import RoutineService, get_routine_service
from app.utils.errors import NotFoundError
from app.utils.responses import ResponseBuilder

routines_router = APIRouter()


def _to_response(routine) -> dict:
    return RoutineResponse(
        id=routine.id,
        user_id=routine.user_id,
        title=routine.title,
        description=routine.description,
        period=routine.period.value,
        completed=routine.completed,
        checktime=routine.checktime,
    ).model_dump(mode="json")


@routines_router.get(
    "/{routine_id}",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Get a routine",
)
async def get_routine(
    request: Request,
    routine_id: uuid.UUID = Path(..., description="Routine ID"),
    service: RoutineService = Depends(get_routine_service),
):
    routine = await service.get_routine(routine_id)
    if routine is None:
        raise NotFoundError("Routine not found", error_code="ROUTINE_NOT_FOUND")

    return ResponseBuilder.success(
        request=request, data=_to_response(routine), message="Routine retrieved successfully"
    )


@routines_router.patch(
    "/{routine_id}/complete",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Complete a routine for the current period",
)
async def complete_routine(
    request: Request,
    routine_id: uuid.UUID = Path(..., description="Routine ID"),
    service: RoutineService = Depends(get_routine_service),
):
    routine = await service.complete_routine(routine_id)
    if routine is None:
        raise NotFoundError("Routine not found", error_code="ROUTINE_NOT_FOUND")

    return ResponseBuilder.success(
        request=request, data=_to_response(routine), message="Routine completed"
    )
