"""Chat-completions client with bounded retry and exponential backoff.

All outbound traffic to the text-generation endpoint goes through a single
SummaryClient. It receives an httpx.AsyncClient via constructor injection;
the application lifespan owns the client lifecycle.

Failures fall into two classes. Rate limiting (HTTP 429) and transport
errors are retried sequentially with backoff until the budget runs out.
Everything else (missing credential, other non-2xx statuses, an empty
completion) fails on the first attempt.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from enum import StrEnum
from typing import TYPE_CHECKING

import httpx
import structlog

from brevity.errors import BrevityError, ErrorCode

if TYPE_CHECKING:
    from brevity.config import ApiSettings
    from brevity.credentials import CredentialChain

log = structlog.get_logger()

SYSTEM_PROMPT = (
    "You are a witty, sharp, and hilarious movie/TV summarizer. Given a description, "
    "respond with exactly 1-2 sentences that nail the core premise, but make it "
    "genuinely funny. Use dry humor, sarcasm, clever wordplay, or absurd honesty. "
    "Think of how a brutally honest friend would describe the plot. No spoilers, "
    "no quotation marks, no filler. Be punchy, be savage, be memorable."
)
USER_PROMPT_PREFIX = "Give me the funniest, most on-point summary of this:\n\n"

_ERROR_BODY_PREVIEW_CHARS = 200


def build_http_client(settings: ApiSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": "brevity/1.0"},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


# ---------------------------------------------------------------------------
# Retry state machine
# ---------------------------------------------------------------------------


class RetryState(StrEnum):
    ATTEMPTING = "attempting"
    BACKING_OFF = "backing_off"
    SUCCEEDED = "succeeded"
    FAILED_RETRIABLE = "failed_retriable"
    FAILED_FATAL = "failed_fatal"


class AttemptOutcome(StrEnum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    FATAL = "fatal"


def classify_status(status_code: int) -> AttemptOutcome:
    """Map an HTTP status to the outcome of one attempt."""
    if 200 <= status_code < 300:
        return AttemptOutcome.SUCCESS
    if status_code == 429:
        return AttemptOutcome.RATE_LIMITED
    return AttemptOutcome.FATAL


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """Convert a ``Retry-After`` header to seconds.

    Accepts delta-seconds (``"5"``, digits only) and HTTP dates. Returns
    ``None`` when the header is missing or unparseable, so the caller falls
    back to backoff. Values such as ``"inf"`` or ``"1e9"`` are rejected.
    """
    if value is None or not value.strip():
        return None
    value = value.strip()
    if value.isascii() and value.isdigit():
        return float(int(value))

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    now = now or datetime.now(UTC)
    return max(0.0, (when - now).total_seconds())


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff schedule.

    ``attempt`` is zero-based: attempt 0 is the initial request, so a budget
    of ``max_retries=3`` allows four requests in total.
    """

    max_retries: int
    base_delay: float

    def transition(self, outcome: AttemptOutcome, attempt: int) -> RetryState:
        """Next state after ``attempt`` finished with ``outcome``."""
        if outcome is AttemptOutcome.SUCCESS:
            return RetryState.SUCCEEDED
        if outcome is AttemptOutcome.FATAL:
            return RetryState.FAILED_FATAL
        if attempt < self.max_retries:
            return RetryState.BACKING_OFF
        return RetryState.FAILED_RETRIABLE

    def delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Seconds to wait before the attempt following ``attempt``."""
        if retry_after is not None:
            return retry_after
        return self.base_delay * 2**attempt


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class SummaryClient:
    """Generates summaries via the chat-completions endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: ApiSettings,
        credentials: CredentialChain,
    ) -> None:
        self._http = http_client
        self._settings = settings
        self._credentials = credentials
        self._policy = RetryPolicy(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay_seconds,
        )

    def _build_body(self, input_text: str) -> bytes:
        truncated = input_text[: self._settings.max_input_chars]
        payload = {
            "model": self._settings.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"{USER_PROMPT_PREFIX}{truncated}"},
            ],
            "max_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
        }
        return json.dumps(payload).encode("utf-8")

    async def generate(self, input_text: str) -> str:
        """Return a summary of ``input_text``.

        Raises BrevityError with one of UNAUTHENTICATED, RATE_LIMITED,
        NETWORK_ERROR, SERVER_ERROR or EMPTY_RESULT.
        """
        api_key = await self._credentials.resolve()
        if not api_key:
            raise BrevityError(
                code=ErrorCode.UNAUTHENTICATED,
                message="API key not configured.",
                suggestion="Add your OpenAI API key to brevity.yaml or send SET_API_KEY.",
                recoverable=False,
            )

        body = self._build_body(input_text)
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

        attempt = 0
        state = RetryState.ATTEMPTING
        while True:
            response: httpx.Response | None = None
            transport_error: httpx.TransportError | None = None
            try:
                response = await self._http.post(
                    self._settings.endpoint, content=body, headers=headers
                )
                outcome = classify_status(response.status_code)
            except httpx.TransportError as exc:
                transport_error = exc
                outcome = AttemptOutcome.NETWORK_ERROR

            state = self._policy.transition(outcome, attempt)

            if state is RetryState.FAILED_RETRIABLE:
                raise self._exhausted_error(outcome, attempt + 1, transport_error)

            if response is not None and state is RetryState.SUCCEEDED:
                return self._parse_summary(response)

            if response is not None and state is RetryState.FAILED_FATAL:
                raise self._fatal_error(response)

            # RetryState.BACKING_OFF
            retry_after = None
            if response is not None and outcome is AttemptOutcome.RATE_LIMITED:
                retry_after = parse_retry_after(response.headers.get("retry-after"))
            delay = self._policy.delay(attempt, retry_after)
            log.warning(
                "api_retry_backoff",
                outcome=outcome,
                attempt=attempt + 1,
                max_retries=self._policy.max_retries,
                delay_seconds=delay,
                retry_after=retry_after,
            )
            await asyncio.sleep(delay)
            attempt += 1
            state = RetryState.ATTEMPTING

    def _parse_summary(self, response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError as exc:
            raise BrevityError(
                code=ErrorCode.SERVER_ERROR,
                message="API returned a response that is not valid JSON.",
                suggestion="The text-generation service may be misbehaving. Try again later.",
                recoverable=True,
            ) from exc

        content = ""
        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            log.warning("api_response_missing_content")

        summary = content.strip() if isinstance(content, str) else ""
        if not summary:
            raise BrevityError(
                code=ErrorCode.EMPTY_RESULT,
                message="API returned an empty summary.",
                suggestion="The description may be too short or unusual to summarise.",
                recoverable=False,
            )

        log.info("api_summary_generated", summary_length=len(summary))
        return summary

    def _fatal_error(self, response: httpx.Response) -> BrevityError:
        status = response.status_code
        if status in (401, 403):
            # A rejected key is re-resolved next time in case the user replaced it.
            self._credentials.invalidate()
        preview = response.text[:_ERROR_BODY_PREVIEW_CHARS]
        log.warning("api_request_failed", status_code=status)
        return BrevityError(
            code=ErrorCode.SERVER_ERROR,
            message=f"API request failed ({status}): {preview}",
            suggestion="Check the API key and endpoint configuration.",
            recoverable=False,
        )

    def _exhausted_error(
        self,
        outcome: AttemptOutcome,
        attempts: int,
        transport_error: httpx.TransportError | None,
    ) -> BrevityError:
        log.warning("api_retries_exhausted", outcome=outcome, attempts=attempts)
        if outcome is AttemptOutcome.RATE_LIMITED:
            error = BrevityError(
                code=ErrorCode.RATE_LIMITED,
                message=f"API rate limit still in effect after {attempts} attempts.",
                suggestion="Wait a minute before requesting more summaries.",
                recoverable=True,
            )
        else:
            error = BrevityError(
                code=ErrorCode.NETWORK_ERROR,
                message=f"Network error after {attempts} attempts: {transport_error}",
                suggestion="Check your internet connection.",
                recoverable=True,
            )
        if transport_error is not None:
            error.__cause__ = transport_error
        return error
