"""
FieldSync Error Taxonomy
Every error raised by the work order core carries the HTTP status it maps to.
"""


class WorkOrderError(Exception):
    """Base class for work order lifecycle errors"""

    status_code = 400
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message}


class InvalidState(WorkOrderError):
    """Operation attempted against a work order in an incompatible lifecycle state."""
    status_code = 409


class DisallowedCombination(WorkOrderError):
    """Intervention type is not addable given the interventions already present."""
    status_code = 422


class InvalidCategory(WorkOrderError):
    """Intervention type requires a registered category in its payload."""
    status_code = 422


class UntrackedType(WorkOrderError):
    """Parts attributed to an intervention whose type does not track parts."""
    status_code = 422


class WorkOrderNotFound(WorkOrderError):
    status_code = 404


class InterventionNotFound(WorkOrderError):
    status_code = 404


class NotOwner(WorkOrderError):
    """Work order belongs (or is assigned) to another technician."""
    status_code = 403


class DeliveryError(WorkOrderError):
    """System of record unreachable, timed out, or rejected the payload."""
    status_code = 502
    retryable = True
