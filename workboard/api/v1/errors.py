from fastapi import HTTPException, status

from ...services.sprint_service import (
    IncompleteSubtasksError,
    InvalidStatusTransitionError,
    SprintAccessDeniedError,
    SprintNotFoundError,
    SprintServiceError,
    SprintValidationError,
    TargetSprintNotFoundError,
    TaskNotFoundError,
)


def to_http_exception(error: SprintServiceError) -> HTTPException:
    """Translate a service error into the HTTP error returned to the client"""

    if isinstance(error, IncompleteSubtasksError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": str(error), "incompleteTasks": error.to_payload()}
        )

    if isinstance(error, (SprintNotFoundError, TargetSprintNotFoundError, TaskNotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, SprintAccessDeniedError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(error, (SprintValidationError, InvalidStatusTransitionError)):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return HTTPException(status_code=code, detail={"error": str(error)})
