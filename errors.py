"""Error taxonomy for attainment requests.

Every error carries a machine-readable ``kind`` and a human message and is
rendered by the handler registered in ``app.create_app``.
"""


class AttainmentError(Exception):
    kind = 'attainment_error'
    status_code = 400

    def __init__(self, message, kind=None, status_code=None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'success': False, 'kind': self.kind, 'message': self.message}


class NotFoundError(AttainmentError):
    kind = 'not_found'
    status_code = 404


class InvalidConfigurationError(AttainmentError):
    kind = 'invalid_configuration'
    status_code = 400


class ValidationError(AttainmentError):
    kind = 'validation_error'
    status_code = 400


class AuthenticationRequiredError(AttainmentError):
    kind = 'authentication_required'
    status_code = 401


class PermissionDeniedError(AttainmentError):
    kind = 'forbidden'
    status_code = 403
