"""Error taxonomy for the emergency coordination core.

Validation errors are rejected requests and never retried. Race errors mean
someone else already acted on the alert; callers refresh rather than retry.
Only ``StorageUnavailable`` is eligible for bounded retry.
"""

from __future__ import annotations


class EmergencyError(Exception):
    """Base class; carries the HTTP status and a stable machine code."""

    status_code = 400
    code = "emergency_error"
    is_race = False
    retryable = False
    default_message = "Emergency request rejected"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidBloodType(EmergencyError):
    code = "invalid_blood_type"
    default_message = "Invalid blood type"


class InvalidCoordinate(EmergencyError):
    code = "invalid_coordinate"
    default_message = "Invalid coordinate"


class InvalidAlertTransition(EmergencyError):
    status_code = 409
    code = "invalid_alert_transition"
    is_race = True
    default_message = "Emergency alert cannot move to that state"


class DuplicateResponse(EmergencyError):
    status_code = 409
    code = "duplicate_response"
    default_message = "You have already responded to this emergency alert"


class AlertNotActive(EmergencyError):
    status_code = 409
    code = "alert_not_active"
    is_race = True
    default_message = "This emergency alert is no longer active"


class IncompatibleDonor(EmergencyError):
    code = "incompatible_donor"
    default_message = "Donor blood type is not compatible with this emergency"


class ResponseNotPending(EmergencyError):
    status_code = 409
    code = "response_not_pending"
    is_race = True
    default_message = "This response is no longer available for selection"


class ResponseNotSelected(EmergencyError):
    status_code = 409
    code = "response_not_selected"
    is_race = True
    default_message = "Only selected responses can be completed"


class Forbidden(EmergencyError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not allowed to act on this emergency alert"


class StorageUnavailable(EmergencyError):
    status_code = 503
    code = "storage_unavailable"
    retryable = True
    default_message = "Storage is temporarily unavailable"


__all__ = [
    "EmergencyError",
    "InvalidBloodType",
    "InvalidCoordinate",
    "InvalidAlertTransition",
    "DuplicateResponse",
    "AlertNotActive",
    "IncompatibleDonor",
    "ResponseNotPending",
    "ResponseNotSelected",
    "Forbidden",
    "StorageUnavailable",
]
