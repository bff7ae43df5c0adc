"""Async client for the patient records service (Data Store).

The access layer never reads clinical data itself except for the narrow
emergency payload; it only asks the records service which organizations and
nurses a patient is linked to, so that tenant checks can be enforced.
"""

import logging
from collections.abc import Iterable
from urllib.parse import quote

import httpx
from opentelemetry import trace

from app.core.retry import retry_async_operation
from app.infrastructure.records.exceptions import (
    PatientNotFoundError,
    PatientRecordsConnectionError,
    PatientRecordsOperationError,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (httpx.ConnectError, httpx.TimeoutException)


def _segment(value: str) -> str:
    """Percent-encode a value as exactly one path segment."""
    encoded = quote(value, safe="")
    # "." and ".." would be resolved as relative segments
    if encoded.strip(".") == "":
        return encoded.replace(".", "%2E")
    return encoded


class PatientRecordsClient:
    """Async HTTP client with retry and OpenTelemetry tracing.

    Example:
        ```python
        client = PatientRecordsClient("http://patient-records:8000/internal")
        orgs = await client.organizations_for_patient("p-42")
        await client.close()
        ```
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        retry_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Records service base URL
            timeout: Request timeout in seconds
            retry_attempts: Attempts on connection errors and timeouts
            transport: Optional transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = str(base_url).rstrip("/")
        self.retry_attempts = retry_attempts
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict[str, str] | None = None) -> httpx.Response:
        try:
            return await retry_async_operation(
                self._client.get,
                path,
                params=params,
                max_attempts=self.retry_attempts,
                exceptions=TRANSIENT_ERRORS,
            )
        except TRANSIENT_ERRORS as e:
            raise PatientRecordsConnectionError(f"Patient records service unreachable: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, patient_id: str) -> None:
        if response.status_code == 404:
            raise PatientNotFoundError(patient_id)
        if response.status_code >= 400:
            raise PatientRecordsOperationError(
                response.status_code,
                f"Patient records service returned {response.status_code}",
            )

    async def organizations_for_patient(self, patient_id: str) -> set[str]:
        """Return the ids of organizations the patient is registered with.

        Raises:
            PatientNotFoundError: If the patient does not exist
            PatientRecordsConnectionError: If the service cannot be reached
        """
        with tracer.start_as_current_span("records.patient_organizations") as span:
            span.set_attribute("patient.id", patient_id)
            response = await self._get(f"/patients/{_segment(patient_id)}/organizations")
            self._raise_for_status(response, patient_id)
            organization_ids = set(response.json().get("organization_ids", []))
            span.set_attribute("records.organization_count", len(organization_ids))
            return organization_ids

    async def nurse_attends_patient(self, patient_id: str, nurse_user_id: str) -> bool:
        """Check whether an independent nurse has a care relationship with the patient."""
        with tracer.start_as_current_span("records.nurse_link") as span:
            span.set_attribute("patient.id", patient_id)
            path = f"/patients/{_segment(patient_id)}/nurses/{_segment(nurse_user_id)}"
            response = await self._get(path)
            if response.status_code == 404:
                return False
            self._raise_for_status(response, patient_id)
            return True

    async def emergency_data(self, patient_id: str, fields: Iterable[str]) -> dict:
        """Fetch the critical data of a patient, limited to the given fields.

        Raises:
            PatientNotFoundError: If the patient does not exist
            PatientRecordsConnectionError: If the service cannot be reached
        """
        requested = sorted(fields)
        with tracer.start_as_current_span("records.emergency_data") as span:
            span.set_attribute("patient.id", patient_id)
            span.set_attribute("records.fields", requested)
            response = await self._get(
                f"/patients/{_segment(patient_id)}/emergency-data",
                params={"fields": ",".join(requested)},
            )
            self._raise_for_status(response, patient_id)
            return response.json()
