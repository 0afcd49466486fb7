import asyncio

import pytest

from checkcx.core.config import settings
from checkcx.core.constants import DEGRADED_THRESHOLD_MS, REQUEST_TIMED_OUT
from checkcx.schemas.check import Challenge, HealthStatus, ProviderConfig
from checkcx.services.probes import (
    AnthropicProbe,
    GeminiProbe,
    OpenAIProbe,
    ProbeRegistry,
    classify_latency,
)
from checkcx.services.probes import base as probe_base
from checkcx.services.probes.base import extract_message
from tests.fakes import (
    FakeCompletions,
    FakePinger,
    FakeStream,
    anthropic_events,
    fake_anthropic_client,
    fake_openai_client,
    openai_chunks,
)


@pytest.fixture(autouse=True)
def fixed_challenge(monkeypatch):
    monkeypatch.setattr(
        probe_base, "generate_challenge",
        lambda: Challenge(prompt="37 + 8 = ?", expected_answer="45")
    )


def make_config(provider_type: str = "anthropic", **overrides) -> ProviderConfig:
    values = {
        "id": "p1",
        "name": "Provider One",
        "type": provider_type,
        "model": "test-model",
        "endpoint": None,
        "api_key": "sk-test",
        "group_name": "Team A",
    }
    values.update(overrides)
    return ProviderConfig(**values)


def with_client(probe, client):
    probe._build_client = lambda base_url, config: client
    return probe


@pytest.mark.parametrize("latency_ms", [0, 1, 5999, 6000])
def test_latency_within_threshold_is_operational(latency_ms):
    assert classify_latency(latency_ms, 6000) == HealthStatus.OPERATIONAL


@pytest.mark.parametrize("latency_ms", [6001, 10_000, 45_000])
def test_latency_over_threshold_is_degraded(latency_ms):
    assert classify_latency(latency_ms, 6000) == HealthStatus.DEGRADED


@pytest.mark.asyncio
async def test_stream_reading_stops_once_answer_is_seen(pinger):
    stream = FakeStream(anthropic_events("Let me think... ", "4", "5", ".", " Anything else?"))
    completions = FakeCompletions(stream)
    probe = with_client(AnthropicProbe(pinger), fake_anthropic_client(completions))

    result = await probe.run_check(make_config())

    assert result.status == HealthStatus.OPERATIONAL
    assert result.message.startswith("verification passed")
    assert result.latency_ms is not None
    assert result.ping_latency_ms == 12
    # message_start plus three text deltas; nothing after "5" is read
    assert stream.consumed == 4
    assert stream.closed
    assert completions.calls[0]["messages"] == [{"role": "user", "content": "37 + 8 = ?"}]
    assert completions.calls[0]["stream"] is True


@pytest.mark.asyncio
async def test_result_carries_provider_identity(pinger):
    completions = FakeCompletions(FakeStream(anthropic_events("45")))
    probe = with_client(AnthropicProbe(pinger), fake_anthropic_client(completions))

    result = await probe.run_check(make_config())

    assert result.id == "p1"
    assert result.name == "Provider One"
    assert result.type == "anthropic"
    assert result.model == "test-model"
    assert result.endpoint == "https://api.anthropic.com/v1/messages"
    assert result.group_name == "Team A"
    assert result.checked_at.tzinfo is not None
    assert pinger.calls == ["https://api.anthropic.com/v1/messages"]


@pytest.mark.asyncio
async def test_wrong_answer_fails_verification(pinger):
    stream = FakeStream(anthropic_events("The answer is ", "44"))
    probe = with_client(AnthropicProbe(pinger), fake_anthropic_client(FakeCompletions(stream)))

    result = await probe.run_check(make_config())

    assert result.status == HealthStatus.FAILED
    assert "expected 45" in result.message
    assert "The answer is 44" in result.message
    assert result.ping_latency_ms == 12
    assert stream.closed


@pytest.mark.asyncio
async def test_verification_failure_preview_is_truncated(pinger):
    stream = FakeStream(openai_chunks("x" * 500))
    probe = with_client(OpenAIProbe(pinger), fake_openai_client(FakeCompletions(stream)))

    result = await probe.run_check(make_config("openai"))

    assert result.status == HealthStatus.FAILED
    assert result.message.endswith("x" * 100)
    assert "x" * 101 not in result.message


@pytest.mark.asyncio
async def test_empty_stream_reports_empty_reply(pinger):
    probe = with_client(OpenAIProbe(pinger), fake_openai_client(FakeCompletions(FakeStream([]))))

    result = await probe.run_check(make_config("openai"))

    assert result.status == HealthStatus.FAILED
    assert result.message.endswith("(empty)")


@pytest.mark.asyncio
async def test_slow_verified_response_is_degraded(pinger):
    stream = FakeStream(anthropic_events("45"))
    probe = with_client(
        AnthropicProbe(pinger, degraded_threshold_ms=-1),
        fake_anthropic_client(FakeCompletions(stream))
    )

    result = await probe.run_check(make_config())

    assert result.status == HealthStatus.DEGRADED
    assert result.message == f"responded but took {result.latency_ms}ms"


@pytest.mark.asyncio
async def test_deadline_produces_timeout_result(pinger):
    stream = FakeStream(anthropic_events("4", "5"), delay=5)
    probe = with_client(
        AnthropicProbe(pinger, timeout_seconds=0.05),
        fake_anthropic_client(FakeCompletions(stream))
    )

    result = await asyncio.wait_for(probe.run_check(make_config()), timeout=2)

    assert result.status == HealthStatus.FAILED
    assert result.latency_ms is None
    assert result.message == REQUEST_TIMED_OUT
    assert result.ping_latency_ms == 12
    assert stream.closed


@pytest.mark.asyncio
async def test_abort_like_transport_error_is_a_timeout(pinger):
    completions = FakeCompletions(error=RuntimeError("Request was aborted."))
    probe = with_client(AnthropicProbe(pinger), fake_anthropic_client(completions))

    result = await probe.run_check(make_config())

    assert result.status == HealthStatus.FAILED
    assert result.message == REQUEST_TIMED_OUT


@pytest.mark.asyncio
async def test_transport_error_is_reported_with_ping(pinger):
    completions = FakeCompletions(error=ConnectionError("connection refused"))
    probe = with_client(OpenAIProbe(pinger), fake_openai_client(completions))

    result = await probe.run_check(make_config("openai"))

    assert result.status == HealthStatus.FAILED
    assert result.latency_ms is None
    assert result.message == "connection refused"
    assert result.ping_latency_ms == 12


@pytest.mark.asyncio
async def test_error_without_text_gets_generic_message(pinger):
    completions = FakeCompletions(error=ValueError())
    probe = with_client(OpenAIProbe(pinger), fake_openai_client(completions))

    result = await probe.run_check(make_config("openai"))

    assert result.message == "unknown error"


@pytest.mark.asyncio
async def test_ping_failure_does_not_affect_the_check():
    probe = with_client(
        AnthropicProbe(FakePinger(value=None)),
        fake_anthropic_client(FakeCompletions(FakeStream(anthropic_events("45"))))
    )

    result = await probe.run_check(make_config())

    assert result.status == HealthStatus.OPERATIONAL
    assert result.ping_latency_ms is None


@pytest.mark.asyncio
async def test_ping_runs_alongside_the_model_call():
    # Each side takes 0.2s; run back to back they would blow the 0.35s budget
    pinger = FakePinger(delay=0.2)
    stream = FakeStream(anthropic_events("45"), delay=0.1)
    probe = with_client(AnthropicProbe(pinger), fake_anthropic_client(FakeCompletions(stream)))

    result = await asyncio.wait_for(probe.run_check(make_config()), timeout=0.35)

    assert result.status == HealthStatus.OPERATIONAL
    assert result.ping_latency_ms == 12


@pytest.mark.asyncio
async def test_maintenance_skips_network(pinger):
    completions = FakeCompletions(FakeStream(anthropic_events("45")))
    probe = with_client(AnthropicProbe(pinger), fake_anthropic_client(completions))

    result = await probe.run_check(make_config(is_maintenance=True))

    assert result.status == HealthStatus.MAINTENANCE
    assert result.latency_ms is None
    assert completions.calls == []
    assert pinger.calls == []


@pytest.mark.asyncio
async def test_missing_credential_fails_without_network(pinger):
    completions = FakeCompletions(FakeStream(anthropic_events("45")))
    probe = with_client(AnthropicProbe(pinger), fake_anthropic_client(completions))

    result = await probe.run_check(make_config(api_key=""))

    assert result.status == HealthStatus.FAILED
    assert "api_key" in result.message
    assert completions.calls == []


@pytest.mark.asyncio
async def test_request_params_merge_with_overrides_winning(pinger):
    completions = FakeCompletions(FakeStream(anthropic_events("45")))
    probe = with_client(AnthropicProbe(pinger), fake_anthropic_client(completions))
    config = make_config(metadata={"temperature": 0.5, "max_tokens": 64, "top_k": 3})

    await probe.run_check(config, overrides={"max_tokens": 32})

    call = completions.calls[0]
    assert call["max_tokens"] == 32
    assert call["temperature"] == 0.5
    assert call["extra_body"] == {"top_k": 3}
    assert call["model"] == "test-model"


@pytest.mark.asyncio
async def test_openai_compatible_probe_short_circuits(pinger):
    stream = FakeStream(openai_chunks("", "Sure, ", "45", "!", " Bye"))
    completions = FakeCompletions(stream)
    probe = with_client(OpenAIProbe(pinger), fake_openai_client(completions))

    result = await probe.run_check(make_config("openai"))

    assert result.status == HealthStatus.OPERATIONAL
    assert stream.consumed == 3
    assert stream.closed
    assert completions.calls[0]["max_tokens"] == 16
    assert completions.calls[0]["extra_body"] is None


@pytest.mark.asyncio
async def test_gemini_only_checks_liveness(pinger):
    stream = FakeStream(openai_chunks("Hello", " there"))
    completions = FakeCompletions(stream)
    probe = with_client(GeminiProbe(pinger), fake_openai_client(completions))

    result = await probe.run_check(make_config("gemini"))

    assert result.status == HealthStatus.OPERATIONAL
    assert result.message.startswith("stream ok")
    assert stream.consumed == 2
    call = completions.calls[0]
    assert call["messages"] == [{"role": "user", "content": "hi"}]
    assert call["max_tokens"] == 1
    assert call["temperature"] == 0


def test_base_urls_are_derived_from_full_endpoints(pinger):
    assert AnthropicProbe(pinger).derive_base_url("https://proxy.example.com/v1/messages?beta=1") == \
        "https://proxy.example.com"
    assert OpenAIProbe(pinger).derive_base_url("https://proxy.example.com/v1/chat/completions/") == \
        "https://proxy.example.com/v1"
    assert OpenAIProbe(pinger).derive_base_url("https://proxy.example.com/v1") == "https://proxy.example.com/v1"


def test_clients_are_reused_per_endpoint_credential_and_headers(pinger):
    probe = AnthropicProbe(pinger)
    built = []

    def build(base_url, config):
        built.append((base_url, config.api_key))
        return object()

    probe._build_client = build
    first = probe.get_client(make_config(request_headers={"X-A": "1", "X-B": "2"}))
    second = probe.get_client(make_config(id="p2", request_headers={"X-B": "2", "X-A": "1"}))
    third = probe.get_client(make_config(request_headers={"X-A": "other"}))

    assert first is second
    assert third is not first
    assert len(built) == 2


def test_default_headers_let_custom_headers_win(pinger):
    probe = AnthropicProbe(pinger)
    headers = probe.default_headers(make_config(request_headers={"User-Agent": "custom/1.0", "X-Team": "a"}))
    assert headers == {"User-Agent": "custom/1.0", "X-Team": "a"}


def test_extract_message_reads_json_error_bodies():
    assert extract_message('{"error": {"message": "invalid x-api-key"}}') == "invalid x-api-key"
    assert extract_message('{"message": "rate limited"}') == "rate limited"
    assert extract_message("plain text " * 100) == ("plain text " * 100)[:280]
    assert extract_message("") == ""


@pytest.mark.asyncio
async def test_registry_dispatches_by_type(pinger):
    completions = FakeCompletions(FakeStream(openai_chunks("45")))
    openai_probe = with_client(OpenAIProbe(pinger), fake_openai_client(completions))
    registry = ProbeRegistry([AnthropicProbe(pinger), openai_probe])

    result = await registry.run_check(make_config("OpenAI"))

    assert result.status == HealthStatus.OPERATIONAL
    assert registry.supported_types() == ["anthropic", "openai"]


@pytest.mark.asyncio
async def test_registry_reports_unknown_types(pinger):
    registry = ProbeRegistry([AnthropicProbe(pinger)])

    result = await registry.run_check(make_config("cohere"))

    assert result.status == HealthStatus.ERROR
    assert "cohere" in result.message


def test_threshold_defaults_to_configured_value(pinger):
    assert settings.degraded_threshold_ms == DEGRADED_THRESHOLD_MS
    assert AnthropicProbe(pinger).degraded_threshold_ms == DEGRADED_THRESHOLD_MS
