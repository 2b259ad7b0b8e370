# freelancedesk/errors.py

"""
Error taxonomy shared by the services and the blueprints.

Services raise these; routes decide how each one surfaces (redirect to
sign-in, inline flash message, dedicated not-found page, JSON body).
"""


class FreelanceDeskError(Exception):
    status_code = 500
    default_message = 'Something went wrong.'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthenticatedError(FreelanceDeskError):
    status_code = 401
    default_message = 'Please log in to continue.'


class AuthorizationError(FreelanceDeskError):
    status_code = 403
    default_message = 'You are not allowed to do that.'


class NotFoundError(FreelanceDeskError):
    status_code = 404
    default_message = 'Not found.'


class ValidationError(FreelanceDeskError):
    status_code = 400
    default_message = 'Invalid input.'


class ExpiredInviteError(FreelanceDeskError):
    status_code = 410
    default_message = 'This invitation link has expired.'


class ConflictError(FreelanceDeskError):
    status_code = 409
    default_message = 'Already exists.'


class UpstreamFailure(FreelanceDeskError):
    status_code = 502
    default_message = 'The service is temporarily unavailable. Please try again.'
