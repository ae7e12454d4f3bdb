from fastapi import status


class ProgressionError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ProgressionError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class ConflictError(ProgressionError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class NotFoundError(ProgressionError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: object | None = None):
        if resource_id is None:
            detail = f"{resource} not found"
        else:
            detail = f"{resource} with id {resource_id} not found"
        super().__init__(detail)
        self.resource = resource
        self.resource_id = resource_id
