"""Error types that blueprints turn into JSON responses."""

from flask import jsonify


class ApiError(Exception):
    status = 400

    def __init__(self, message, status=None, details=None, code=None, extra=None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        self.details = details
        self.code = code
        self.extra = dict(extra or {})

    def to_dict(self):
        body = {'error': self.message}
        if self.details:
            body['details'] = self.details
        if self.code:
            body['code'] = self.code
        body.update(self.extra)
        return body

    def to_response(self):
        return jsonify(self.to_dict()), self.status


class ServiceUnavailable(ApiError):
    status = 503

    def __init__(self, message='Database not initialized', **kwargs):
        super().__init__(message, **kwargs)


class NotFound(ApiError):
    status = 404


class Forbidden(ApiError):
    status = 403


class UsageRecordNotFound(Exception):
    """Raised when a free-tier usage record is required but missing."""
