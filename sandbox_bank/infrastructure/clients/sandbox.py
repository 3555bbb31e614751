"""Sandbox HTTP API client with retry on transient failures"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from sandbox_bank.config import settings
from sandbox_bank.domain.exceptions import SandboxAPIError
from sandbox_bank.domain.models import ChallengeAnswer

logger = logging.getLogger(__name__)


def _is_server_error(response: httpx.Response) -> bool:
    return response.status_code >= 500


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "Sandbox request failed, retrying",
        extra={
            "attempt": retry_state.attempt_number,
            "wait_seconds": retry_state.next_action.sleep if retry_state.next_action else None,
            "error": str(outcome.exception()) if outcome.failed else f"status {outcome.result().status_code}",
        },
    )


def _last_outcome(retry_state: RetryCallState) -> httpx.Response:
    # Hand back the final response, or re-raise the final transport error
    return retry_state.outcome.result()


@dataclass
class RetryPolicy:
    """Exponential backoff with a cap and symmetric jitter"""

    max_retries: int = 3
    wait: float = 0.2
    max_wait: float = 5.0
    multiplier: float = 2.0  # 0 keeps the wait constant
    jitter: float = 0.1

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.client_max_retries,
            wait=settings.client_backoff_base,
            max_wait=settings.client_backoff_max,
            multiplier=settings.client_backoff_multiplier,
            jitter=settings.client_backoff_jitter,
        )

    def backoff(self, retry_state: RetryCallState) -> float:
        """
        Delay after failed attempt number n.

        wait * multiplier^(n-1), capped at max_wait, plus uniform noise in
        [-jitter, +jitter]. Never negative.
        """
        strategy = wait_exponential(
            multiplier=self.wait,
            exp_base=self.multiplier if self.multiplier > 0 else 1,
            max=self.max_wait,
        )
        if self.jitter > 0:
            strategy = strategy + wait_random(-self.jitter, self.jitter)
        return max(strategy(retry_state), 0.0)

    def retrying(self, retryable: bool) -> Retrying:
        """Retry controller for one request; non-retryable requests get a single attempt"""
        return Retrying(
            stop=stop_after_attempt(self.max_retries + 1 if retryable else 1),
            wait=self.backoff,
            retry=retry_if_exception_type(httpx.TransportError) | retry_if_result(_is_server_error),
            before_sleep=_log_retry,
            retry_error_callback=_last_outcome,
        )


def _error_codes(response: httpx.Response) -> List[str]:
    try:
        body = response.json()
    except ValueError:
        return []
    if not isinstance(body, dict):
        return []
    return [e.get("code", "") for e in body.get("errors", []) if isinstance(e, dict)]


class SandboxClient:
    """
    Client for the sandbox HTTP API.

    GET requests are retried on transport errors and 5xx responses; other
    methods only when the caller passes retryable=True.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        application_id: str | None = None,
        token: str | None = None,
        http: httpx.Client | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ):
        self.application_id = application_id
        self.token = token
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout or settings.http_timeout_seconds)
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.application_id:
            headers["X-Application-Id"] = self.application_id
        if self.token:
            headers["X-Token"] = self.token
        return headers

    def _send(self, method: str, path: str, json: Any) -> httpx.Response:
        return self.http.request(method, path, json=json, headers=self._headers())

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        retryable: Optional[bool] = None,
    ) -> httpx.Response:
        """
        Send a request, retrying per the policy.

        Raises:
            SandboxAPIError: Non-2xx final response, or transport failure after retries
        """
        if retryable is None:
            retryable = method.upper() == "GET"

        try:
            response = self.retry_policy.retrying(retryable)(self._send, method, path, json)
        except httpx.TransportError as e:
            raise SandboxAPIError(0, ["transport_error"]) from e

        if response.is_error:
            raise SandboxAPIError(
                response.status_code,
                _error_codes(response),
                response.headers.get("X-Request-ID"),
            )
        return response

    # Accesses & jobs

    def add_access(self, provider_id: str, answers: List[ChallengeAnswer] | None = None) -> str:
        """Start a linking job; returns its URI"""
        response = self.request(
            "POST",
            "/v1/accesses",
            json={"provider_id": provider_id, "challenge_answers": _answers(answers)},
        )
        return response.json()["uri"]

    def refresh_access(self, access_id: int) -> str:
        response = self.request("POST", f"/v1/accesses/{access_id}/refresh")
        return response.json()["uri"]

    def job_status(self, uri: str) -> Dict[str, Any]:
        return self.request("GET", f"/v1{uri}").json()

    def answer_job(self, uri: str, answers: List[ChallengeAnswer]) -> Dict[str, Any]:
        response = self.request("PUT", f"/v1{uri}", json={"challenge_answers": _answers(answers)})
        return response.json()

    # Transfers

    def create_transfer(
        self,
        from_account: int,
        to: Dict[str, str],
        amount: Dict[str, str],
        transfer_type: str = "regular",
        schedule: Dict[str, Any] | None = None,
        usage: str = "",
        answers: List[ChallengeAnswer] | None = None,
    ) -> Dict[str, Any]:
        body = {
            "from": from_account,
            "to": to,
            "amount": amount,
            "type": transfer_type,
            "usage": usage,
            "challenge_answers": _answers(answers),
        }
        if schedule is not None:
            body["schedule"] = schedule
        return self.request("POST", "/v1/transfers", json=body).json()

    def process_transfer(
        self,
        transfer_id: str,
        intent: str | None,
        version: int,
        transfer_type: str = "regular",
        confirm: bool = False,
        answers: List[ChallengeAnswer] | None = None,
    ) -> Dict[str, Any]:
        body = {
            "intent": intent,
            "version": version,
            "type": transfer_type,
            "confirm": confirm,
            "challenge_answers": _answers(answers),
        }
        return self.request("POST", f"/v1/transfers/{transfer_id}", json=body).json()

    def close(self) -> None:
        self.http.close()


def _answers(answers: List[ChallengeAnswer] | None) -> List[Dict[str, Any]]:
    return [asdict(a) for a in answers or []]
