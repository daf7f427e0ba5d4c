from rest_framework import exceptions, status


class PipelineError(exceptions.APIException):
    """Base for every error surfaced by the pipeline. `kind` is the stable error code."""

    kind = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, message=None, details=None):
        super().__init__(detail=message or self.default_detail, code=self.kind)
        self.message = str(self.detail)
        self.details = details

    def __str__(self):
        return self.message


class BadRequest(PipelineError):
    kind = "BadRequest"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Malformed request"


class Unauthorized(PipelineError):
    kind = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"


class Forbidden(PipelineError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Requires admin or owner"


class NotFound(PipelineError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(PipelineError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Already exists"


class UpstreamUnavailable(PipelineError):
    kind = "UpstreamUnavailable"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream service unavailable"


class Internal(PipelineError):
    pass
