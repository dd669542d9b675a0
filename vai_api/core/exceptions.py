"""Billing domain errors.

Services raise these; the app-level handler in vai_api.main turns them into
``{"detail": ...}`` responses with the status code carried by the class.
"""


class BillingError(Exception):
    status_code = 500

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotAuthorized(BillingError):
    status_code = 403


class NotFound(BillingError):
    status_code = 404


class PlanNotFound(NotFound):
    pass


class CompanyNotFound(NotFound):
    pass


class InvalidInput(BillingError):
    status_code = 400


class Conflict(BillingError):
    status_code = 409


class UpstreamFailure(BillingError):
    status_code = 502
