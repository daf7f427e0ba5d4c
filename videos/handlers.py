import logging
import traceback

from django.conf import settings
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from .errors import BadRequest, Forbidden, Internal, NotFound, PipelineError, Unauthorized

logger = logging.getLogger(__name__)

# DRF's own exceptions -> our stable kinds
_DRF_KINDS = {
    exceptions.ValidationError: BadRequest,
    exceptions.ParseError: BadRequest,
    exceptions.UnsupportedMediaType: BadRequest,
    exceptions.MethodNotAllowed: BadRequest,
    exceptions.NotAcceptable: BadRequest,
    exceptions.Throttled: BadRequest,
    exceptions.NotAuthenticated: Unauthorized,
    exceptions.AuthenticationFailed: Unauthorized,
    exceptions.PermissionDenied: Forbidden,
    exceptions.NotFound: NotFound,
}


def _error_payload(kind, message, details=None, exc=None):
    body = {"code": kind, "message": message}
    if details:
        body["details"] = details
    if settings.DEBUG and exc is not None:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return {"error": body}


def _kind_for(exc, status_code) -> str:
    kind_cls = next((k for t, k in _DRF_KINDS.items() if isinstance(exc, t)), None)
    if kind_cls:
        return kind_cls.kind
    return BadRequest.kind if status_code < 500 else Internal.kind


def pipeline_exception_handler(exc, context):
    """
    Render every error as {"error": {"code", "message", "details"?}}.
    Stack traces are only attached when DEBUG is on.
    """
    if isinstance(exc, PipelineError):
        payload = _error_payload(exc.kind, exc.message, exc.details, exc)
        return Response(payload, status=exc.status_code)

    if isinstance(exc, Http404):
        exc = exceptions.NotFound()

    response = exception_handler(exc, context)
    if response is not None:
        kind = _kind_for(exc, response.status_code)
        if isinstance(exc, exceptions.ValidationError):
            payload = _error_payload(kind, "Invalid request payload", exc.detail, exc)
        else:
            payload = _error_payload(kind, str(exc.detail), exc=exc)
        response.data = payload
        return response

    view = context.get("view")
    logger.exception("Unhandled error in %s", type(view).__name__ if view else "request")
    return Response(
        _error_payload(Internal.kind, Internal.default_detail, exc=exc),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
