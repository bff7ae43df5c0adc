"""Client for the patient records service."""

from app.infrastructure.records.client import PatientRecordsClient
from app.infrastructure.records.exceptions import (
    PatientNotFoundError,
    PatientRecordsConnectionError,
    PatientRecordsError,
    PatientRecordsOperationError,
)

__all__ = [
    "PatientNotFoundError",
    "PatientRecordsClient",
    "PatientRecordsConnectionError",
    "PatientRecordsError",
    "PatientRecordsOperationError",
]
