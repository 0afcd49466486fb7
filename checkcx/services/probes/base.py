import asyncio
import json
import re
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Type

from checkcx.core.config import settings
from checkcx.core.constants import (
    DEFAULT_ENDPOINTS,
    MAX_ERROR_MESSAGE_LENGTH,
    MESSAGE_PREVIEW_LENGTH,
    REQUEST_TIMED_OUT,
    UNKNOWN_ERROR,
)
from checkcx.core.logging import CheckLogger
from checkcx.schemas.check import Challenge, CheckResult, HealthStatus, ProviderConfig
from checkcx.services.challenge import generate_challenge, validate_response
from checkcx.services.client_cache import ClientCache
from checkcx.services.ping import PingProber


_ABORTED_PATTERN = re.compile(r"request was aborted|request timed out", re.IGNORECASE)

# Request parameters passed as SDK keyword arguments; anything else goes in extra_body
KNOWN_REQUEST_PARAMS = ("max_tokens", "temperature", "top_p")


def classify_latency(latency_ms: int, threshold_ms: int) -> HealthStatus:
    """Verified responses are operational up to the threshold, degraded above it"""
    return HealthStatus.OPERATIONAL if latency_ms <= threshold_ms else HealthStatus.DEGRADED


def extract_message(body: str) -> str:
    """Pull a readable error out of a JSON error body, or truncate raw text"""
    if not body:
        return ""
    try:
        parsed = json.loads(body)
    except ValueError:
        return body[:MAX_ERROR_MESSAGE_LENGTH]

    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])[:MAX_ERROR_MESSAGE_LENGTH]
        if error:
            return str(error)[:MAX_ERROR_MESSAGE_LENGTH]
        if parsed.get("message"):
            return str(parsed["message"])[:MAX_ERROR_MESSAGE_LENGTH]
    return json.dumps(parsed)[:MAX_ERROR_MESSAGE_LENGTH]


def strip_path_suffix(endpoint: str, suffix_pattern: str) -> str:
    """Derive an SDK base URL from a configured full request URL"""
    without_query = endpoint.split("?", 1)[0]
    return re.sub(suffix_pattern, "", without_query)


class ProviderProbe(ABC):
    """
    One verified streaming health check against one wire protocol.

    Subclasses supply the client, how to open the stream and how to pull text
    out of stream events. The shared flow runs the ping alongside the model
    call, bounds the call with a deadline, stops reading as soon as the
    challenge answer shows up and classifies the outcome.
    """

    provider_type: str = ""
    timeout_seconds: float = 45.0
    requires_challenge: bool = True
    default_params: Dict[str, Any] = {}
    abort_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(
        self,
        pinger: PingProber,
        client_cache: Optional[ClientCache] = None,
        degraded_threshold_ms: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.pinger = pinger
        self.client_cache = client_cache if client_cache is not None else ClientCache()
        self.degraded_threshold_ms = (
            degraded_threshold_ms if degraded_threshold_ms is not None else settings.degraded_threshold_ms
        )
        if timeout_seconds is not None:
            self.timeout_seconds = timeout_seconds
        self.logger = CheckLogger(f"probe.{self.provider_type}")

    # Protocol hooks

    @abstractmethod
    def derive_base_url(self, endpoint: str) -> str:
        ...

    @abstractmethod
    def _build_client(self, base_url: str, config: ProviderConfig) -> Any:
        ...

    @abstractmethod
    async def _open_stream(self, client: Any, config: ProviderConfig, prompt: str,
                           params: Dict[str, Any]) -> Any:
        ...

    @abstractmethod
    def _event_text(self, event: Any) -> Optional[str]:
        ...

    # Shared flow

    def display_endpoint(self, config: ProviderConfig) -> str:
        return config.endpoint or DEFAULT_ENDPOINTS.get(self.provider_type, "")

    def get_client(self, config: ProviderConfig) -> Any:
        base_url = self.derive_base_url(self.display_endpoint(config))
        return self.client_cache.get_or_create(
            base_url,
            config.api_key,
            config.request_headers,
            lambda: self._build_client(base_url, config),
        )

    def default_headers(self, config: ProviderConfig) -> Dict[str, str]:
        # Some gateways block SDK user agents; custom headers still win
        return {
            "User-Agent": settings.check_user_agent,
            **(config.request_headers or {}),
        }

    def build_params(self, config: ProviderConfig, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {
            **self.default_params,
            **(config.metadata or {}),
            **(overrides or {}),
        }

    @staticmethod
    def split_params(params: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        known = {k: v for k, v in params.items() if k in KNOWN_REQUEST_PARAMS}
        extra = {k: v for k, v in params.items() if k not in KNOWN_REQUEST_PARAMS}
        return known, extra

    def liveness_prompt(self) -> str:
        return "hi"

    def is_abort_like(self, error: BaseException) -> bool:
        if isinstance(error, asyncio.TimeoutError):
            return True
        if self.abort_errors and isinstance(error, self.abort_errors):
            return True
        return bool(_ABORTED_PATTERN.search(str(error) or ""))

    def error_message(self, error: BaseException) -> str:
        if self.is_abort_like(error):
            return REQUEST_TIMED_OUT
        message = getattr(error, "message", None) or str(error)
        return extract_message(message) or UNKNOWN_ERROR

    @staticmethod
    def validate_config(config: ProviderConfig) -> Optional[str]:
        missing = [field for field in ("model", "api_key") if not getattr(config, field)]
        if missing:
            return f"invalid configuration: missing {', '.join(missing)}"
        return None

    async def _consume(self, config: ProviderConfig, challenge: Optional[Challenge],
                       params: Dict[str, Any]) -> Tuple[bool, str]:
        """Read the stream until the answer is seen or the stream ends.

        The stream is closed on every exit, which releases the connection
        when reading stops early, fails or is cancelled by the deadline.
        """
        client = self.get_client(config)
        prompt = challenge.prompt if challenge else self.liveness_prompt()
        stream = await self._open_stream(client, config, prompt, params)

        collected = ""
        try:
            async for event in stream:
                fragment = self._event_text(event)
                if not fragment:
                    continue
                collected += fragment
                if challenge and validate_response(collected, challenge.expected_answer):
                    return True, collected
        finally:
            await stream.close()

        # Liveness-only protocols pass once the stream was readable to the end
        return challenge is None, collected

    def _result(self, config: ProviderConfig, status: HealthStatus, message: str,
                latency_ms: Optional[int] = None, ping_latency_ms: Optional[int] = None) -> CheckResult:
        return CheckResult(
            id=config.id,
            name=config.name,
            type=config.type,
            endpoint=self.display_endpoint(config),
            model=config.model,
            status=status,
            latency_ms=latency_ms,
            ping_latency_ms=ping_latency_ms,
            checked_at=datetime.now(timezone.utc),
            message=message,
            group_name=config.group_name,
        )

    async def run_check(self, config: ProviderConfig, overrides: Optional[Dict[str, Any]] = None) -> CheckResult:
        if config.is_maintenance:
            return self._result(config, HealthStatus.MAINTENANCE, "under maintenance")

        problem = self.validate_config(config)
        if problem or not self.display_endpoint(config):
            return self._result(config, HealthStatus.FAILED, problem or "invalid configuration: missing endpoint")

        start_time = time.monotonic()
        ping_task = asyncio.create_task(self.pinger.measure(self.display_endpoint(config)))
        challenge = generate_challenge() if self.requires_challenge else None
        params = self.build_params(config, overrides)

        latency_ms: Optional[int] = None
        try:
            validated, collected = await asyncio.wait_for(
                self._consume(config, challenge, params),
                timeout=self.timeout_seconds
            )
            latency_ms = int((time.monotonic() - start_time) * 1000)

            if not validated:
                status = HealthStatus.FAILED
                preview = collected[:MESSAGE_PREVIEW_LENGTH] or "(empty)"
                message = f"verification failed: expected {challenge.expected_answer}, got: {preview}"
            else:
                status = classify_latency(latency_ms, self.degraded_threshold_ms)
                if status == HealthStatus.DEGRADED:
                    message = f"responded but took {latency_ms}ms"
                elif challenge:
                    message = f"verification passed ({latency_ms}ms)"
                else:
                    message = f"stream ok ({latency_ms}ms)"

        except asyncio.CancelledError:
            ping_task.cancel()
            raise
        except Exception as e:
            latency_ms = None
            status = HealthStatus.FAILED
            message = self.error_message(e)
            self.logger.check_failed(config.id, message)

        ping_latency_ms = await ping_task
        self.logger.check_completed(config.id, status.value, latency_ms, ping_latency_ms)
        return self._result(config, status, message, latency_ms, ping_latency_ms)
