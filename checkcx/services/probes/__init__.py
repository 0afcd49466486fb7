from typing import Dict, Iterable, Optional

from checkcx.schemas.check import CheckResult, HealthStatus, ProviderConfig
from checkcx.services.client_cache import ClientCache
from checkcx.services.ping import PingProber
from checkcx.services.probes.anthropic import AnthropicProbe
from checkcx.services.probes.base import ProviderProbe, classify_latency
from checkcx.services.probes.openai_compat import GeminiProbe, OpenAIProbe


class ProbeRegistry:
    """Maps a protocol tag to the probe that speaks it"""

    def __init__(self, probes: Iterable[ProviderProbe]):
        self._probes: Dict[str, ProviderProbe] = {probe.provider_type: probe for probe in probes}

    def get(self, provider_type: str) -> Optional[ProviderProbe]:
        return self._probes.get(provider_type)

    def supported_types(self) -> list:
        return sorted(self._probes)

    async def run_check(self, config: ProviderConfig) -> CheckResult:
        probe = self.get(config.type)
        if probe is None:
            return CheckResult(
                id=config.id,
                name=config.name,
                type=config.type,
                endpoint=config.endpoint or "",
                model=config.model,
                status=HealthStatus.ERROR,
                message=f"unsupported provider type: {config.type}",
                group_name=config.group_name,
            )
        return await probe.run_check(config)


def build_default_registry(pinger: Optional[PingProber] = None) -> ProbeRegistry:
    """One probe per protocol family; OpenAI and Gemini share the OpenAI SDK client pool"""
    pinger = pinger or PingProber()
    openai_clients = ClientCache()
    return ProbeRegistry([
        AnthropicProbe(pinger, ClientCache()),
        OpenAIProbe(pinger, openai_clients),
        GeminiProbe(pinger, openai_clients),
    ])


__all__ = [
    "AnthropicProbe",
    "GeminiProbe",
    "OpenAIProbe",
    "ProbeRegistry",
    "ProviderProbe",
    "build_default_registry",
    "classify_latency",
]
