# parkflow/errors.py
"""
Error kinds raised by the lifecycle managers.
Routers never catch these: the handler registered in main.py turns each
kind into its HTTP status.
"""


class ParkingError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ParkingError):
    kind = "not_found"
    status_code = 404


class InvalidState(ParkingError):
    kind = "invalid_state"
    status_code = 409


class Conflict(ParkingError):
    kind = "conflict"
    status_code = 409


class Forbidden(ParkingError):
    kind = "forbidden"
    status_code = 403


class InvalidInput(ParkingError):
    kind = "invalid_input"
    status_code = 400


class UpstreamFailure(ParkingError):
    kind = "upstream_failure"
    status_code = 502
