"""Clients able to start the accounting ETL pipeline on the orchestrator."""

from __future__ import annotations

import abc
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

LOGGER = logging.getLogger(__name__)

DEFAULT_DAG_ID = "process_comptable_files"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 1.0


class DispatchError(RuntimeError):
    """Raised when the orchestrator did not accept the run request."""


class DispatchConfigurationError(DispatchError):
    """Raised when a dispatcher cannot be configured."""


@dataclass(frozen=True)
class EtlJobRequest:
    """Parameters sent to the ETL run."""

    batch_id: str
    client_id: str
    client_name: str
    s3_prefix: str
    s3_bucket: str

    def as_conf(self) -> dict[str, str]:
        return {
            "batch_id": self.batch_id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "s3_prefix": self.s3_prefix,
            "s3_bucket": self.s3_bucket,
        }


@dataclass
class DispatchResult:
    run_id: str
    status_code: Optional[int] = None
    payload: dict = field(default_factory=dict)


class JobDispatcher(abc.ABC):
    """Interface implemented by orchestrator clients."""

    transport: str

    @abc.abstractmethod
    def dispatch(self, request: EtlJobRequest) -> DispatchResult:
        """Start one ETL run and return its identifier."""

    def close(self) -> None:
        """Release network resources held by the dispatcher."""


class ConsoleJobDispatcher(JobDispatcher):
    """Dispatcher that only logs the request, for local development."""

    transport = "console"

    def __init__(self) -> None:
        self.requests: list[EtlJobRequest] = []

    def dispatch(self, request: EtlJobRequest) -> DispatchResult:
        self.requests.append(request)
        run_id = f"console__{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S')}_{uuid.uuid4().hex[:8]}"
        LOGGER.info("[console] ETL run %s for batch %s (%s)", run_id, request.batch_id, request.s3_prefix)
        return DispatchResult(run_id=run_id)


class UnconfiguredJobDispatcher(JobDispatcher):
    """Dispatcher used when no orchestrator is configured; every dispatch fails."""

    transport = "unconfigured"

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def dispatch(self, request: EtlJobRequest) -> DispatchResult:
        raise DispatchError(self.reason)


class AirflowJobDispatcher(JobDispatcher):
    """Trigger DAG runs through the Airflow stable REST API."""

    transport = "airflow"

    def __init__(
        self,
        *,
        api_url: str | None,
        username: str | None,
        password: str | None,
        dag_id: str = DEFAULT_DAG_ID,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not api_url:
            raise DispatchConfigurationError("AIRFLOW_API_URL is not configured")
        if not username or not password:
            raise DispatchConfigurationError("AIRFLOW_USERNAME and AIRFLOW_PASSWORD are required")
        self.api_url = api_url.rstrip("/")
        self.dag_id = dag_id
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._client = httpx.Client(
            auth=(username, password),
            timeout=timeout,
            transport=transport,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/dags/{self.dag_id}/dagRuns"

    def _post(self, request: EtlJobRequest) -> httpx.Response:
        payload = {"conf": request.as_conf()}
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._client.post(self.endpoint, json=payload)
            except httpx.ConnectError as exc:
                # Nothing reached the server, so another attempt cannot start a second run.
                LOGGER.warning(
                    "Airflow unreachable for batch %s (attempt %s/%s): %s",
                    request.batch_id,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                if attempt >= self.max_attempts:
                    raise DispatchError(f"Airflow unreachable: {exc}") from exc
                self._sleep(self.backoff_seconds * attempt)
            except httpx.HTTPError as exc:
                raise DispatchError(f"Airflow request failed: {exc}") from exc

    def dispatch(self, request: EtlJobRequest) -> DispatchResult:
        response = self._post(request)

        if not response.is_success:
            raise DispatchError(
                f"Airflow rejected the run ({response.status_code}): {response.text}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise DispatchError("Airflow returned an invalid JSON body") from exc

        run_id = body.get("dag_run_id") if isinstance(body, dict) else None
        if not run_id:
            raise DispatchError("Airflow response does not contain dag_run_id")

        LOGGER.info("Airflow accepted run %s for batch %s", run_id, request.batch_id)
        return DispatchResult(run_id=str(run_id), status_code=response.status_code, payload=body)

    def close(self) -> None:
        self._client.close()


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Invalid value for %s=%s; using %s", name, raw, default)
        return default


def _read_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Invalid value for %s=%s; using %s", name, raw, default)
        return default


def build_job_dispatcher_from_env() -> JobDispatcher:
    """Instantiate the dispatcher selected by ``ETL_DISPATCH_TRANSPORT``."""

    transport = os.getenv("ETL_DISPATCH_TRANSPORT", "auto").strip().lower()

    if transport == "console":
        return ConsoleJobDispatcher()

    if transport in {"auto", "airflow"}:
        try:
            return AirflowJobDispatcher(
                api_url=os.getenv("AIRFLOW_API_URL"),
                username=os.getenv("AIRFLOW_USERNAME"),
                password=os.getenv("AIRFLOW_PASSWORD"),
                dag_id=os.getenv("AIRFLOW_DAG_ID") or DEFAULT_DAG_ID,
                timeout=_read_float("AIRFLOW_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
                max_attempts=_read_int("AIRFLOW_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
            )
        except DispatchConfigurationError as exc:
            LOGGER.warning("%s; ETL runs cannot be triggered", exc)
            return UnconfiguredJobDispatcher(str(exc))

    LOGGER.warning("Unknown ETL_DISPATCH_TRANSPORT '%s'", transport)
    return UnconfiguredJobDispatcher(f"Unknown ETL_DISPATCH_TRANSPORT '{transport}'")


__all__ = [
    "DispatchError",
    "DispatchConfigurationError",
    "EtlJobRequest",
    "DispatchResult",
    "JobDispatcher",
    "ConsoleJobDispatcher",
    "UnconfiguredJobDispatcher",
    "AirflowJobDispatcher",
    "build_job_dispatcher_from_env",
]
