# opticlinic/exceptions.py
"""Domain errors raised by the services and rendered as JSON by the API.

Every error body carries ``error_type`` and ``message``; subclasses add the
fields the client needs (field errors, the conflicting appointment id).
"""
from typing import Dict, List, Optional


class ClinicError(Exception):
    status_code = 400
    error_type = "error"
    default_message = "The request could not be processed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error_type": self.error_type, "message": self.message}


class ValidationError(ClinicError):
    status_code = 422
    error_type = "validation_error"
    default_message = "The given data was invalid."

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None):
        self.errors = errors
        if message is None and errors:
            first_field = next(iter(errors))
            message = errors[first_field][0]
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls({field: [message]})

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["errors"] = self.errors
        return body


class Forbidden(ClinicError):
    status_code = 403
    error_type = "forbidden"
    default_message = "You are not allowed to perform this action."


class NotFound(ClinicError):
    status_code = 404
    error_type = "not_found"
    default_message = "The requested resource was not found."


class InvalidState(ClinicError):
    status_code = 409
    error_type = "invalid_state"
    default_message = "The appointment is not in a state that allows this action."

    def __init__(self, message: Optional[str] = None, current_status: Optional[str] = None):
        self.current_status = current_status
        super().__init__(message)

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.current_status is not None:
            body["current_status"] = self.current_status
        return body


class AppointmentInProgress(ClinicError):
    status_code = 409
    error_type = "appointment_in_progress"
    default_message = "You already have an appointment in progress. Pause or complete it first."

    def __init__(self, current_appointment_id: Optional[int], message: Optional[str] = None):
        self.current_appointment_id = current_appointment_id
        super().__init__(message)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["current_appointment_id"] = self.current_appointment_id
        return body
