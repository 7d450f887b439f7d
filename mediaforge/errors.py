"""Error taxonomy shared by the generation and publishing apps.

Every error carries a stable machine-readable ``default_code`` and an HTTP
status so the API layer can render it without leaking upstream payloads.
"""
import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ServiceError(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Service error.'
    default_code = 'service_error'

    def __init__(self, detail=None, code=None, **context):
        super().__init__(detail=detail, code=code)
        self.context = {k: v for k, v in context.items() if v is not None}

    @property
    def code(self):
        return self.detail.code if hasattr(self.detail, 'code') else self.default_code

    @property
    def message(self):
        return str(self.detail)

    def as_dict(self):
        body = {'code': self.code, 'message': self.message}
        body.update({k: str(v) for k, v in self.context.items()})
        return {'error': body}


class InvalidInputError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'invalid_input'


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class UpstreamGenerationError(ServiceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'The generation backend failed.'
    default_code = 'upstream_generation_error'

    def __init__(self, stage, detail=None, **context):
        super().__init__(detail=detail, stage=stage, **context)
        self.stage = stage


class PersistenceError(ServiceError):
    default_detail = 'Generated artifact could not be saved.'
    default_code = 'persistence_error'

    def __init__(self, detail=None, artifact_url=None, **context):
        super().__init__(detail=detail, artifact_url=artifact_url, **context)
        self.artifact_url = artifact_url


class AuthRequiredError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'YouTube authentication required.'
    default_code = 'auth_required'


class AuthExchangeError(ServiceError):
    INVALID_GRANT = 'invalid_grant'
    EXCHANGE_REJECTED = 'exchange_rejected'
    UPSTREAM_UNAVAILABLE = 'upstream_unavailable'
    IDENTITY_LOOKUP_FAILED = 'identity_lookup_failed'
    CACHE_UNAVAILABLE = 'cache_unavailable'

    STATUS_BY_REASON = {
        INVALID_GRANT: status.HTTP_400_BAD_REQUEST,
        EXCHANGE_REJECTED: status.HTTP_400_BAD_REQUEST,
        UPSTREAM_UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
        IDENTITY_LOOKUP_FAILED: status.HTTP_502_BAD_GATEWAY,
        CACHE_UNAVAILABLE: status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    default_detail = 'Failed to authenticate with YouTube.'
    default_code = 'auth_exchange_failed'

    def __init__(self, reason, detail=None):
        super().__init__(detail=detail, reason=reason)
        self.reason = reason
        self.status_code = self.STATUS_BY_REASON.get(reason, status.HTTP_500_INTERNAL_SERVER_ERROR)


class UnsupportedPlatformError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Publishing to this platform is not supported.'
    default_code = 'unsupported_platform'


class InvalidStateError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The resource is not in a valid state for this operation.'
    default_code = 'invalid_state'


class PublishError(ServiceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'Failed to publish video.'
    default_code = 'publish_failed'


class PlatformError(ServiceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'The publishing platform request failed.'
    default_code = 'platform_error'


def api_exception_handler(exc, context):
    if isinstance(exc, ServiceError):
        if exc.status_code >= 500:
            logger.error('%s: %s', exc.code, exc.message)
        return Response(exc.as_dict(), status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        logger.exception('Unhandled error in %s', context.get('view').__class__.__name__)
        return Response(
            {'error': {'code': 'internal_error', 'message': 'Internal server error.'}},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    code = getattr(exc, 'default_code', 'error')
    if isinstance(response.data, dict) and set(response.data) == {'detail'}:
        response.data = {'error': {'code': code, 'message': str(response.data['detail'])}}
    else:
        response.data = {'error': {'code': code, 'message': 'Request validation failed.', 'fields': response.data}}
    return response
