"""Patient records service exceptions."""

from typing import Any


class PatientRecordsError(Exception):
    """Base exception for patient records operations."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class PatientRecordsConnectionError(PatientRecordsError):
    """Raised when the patient records service cannot be reached."""

    pass


class PatientNotFoundError(PatientRecordsError):
    """Raised when the patient does not exist (404)."""

    def __init__(self, patient_id: str):
        super().__init__(f"Patient {patient_id} not found", {"patient_id": patient_id})
        self.patient_id = patient_id


class PatientRecordsOperationError(PatientRecordsError):
    """Raised when the service answers with an unexpected status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code
