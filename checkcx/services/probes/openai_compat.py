from typing import Any, Dict, Optional

import openai

from checkcx.schemas.check import ProviderConfig
from checkcx.services.probes.base import ProviderProbe, strip_path_suffix


class OpenAIProbe(ProviderProbe):
    """Challenge-verified check over an OpenAI-compatible chat completions stream"""

    provider_type = "openai"
    timeout_seconds = 45.0
    requires_challenge = True
    default_params = {"max_tokens": 16}
    abort_errors = (openai.APITimeoutError,)

    def derive_base_url(self, endpoint: str) -> str:
        return strip_path_suffix(endpoint, r"/chat/completions/?$")

    def _build_client(self, base_url: str, config: ProviderConfig) -> openai.AsyncOpenAI:
        return openai.AsyncOpenAI(
            api_key=config.api_key,
            base_url=base_url,
            default_headers=self.default_headers(config),
        )

    async def _open_stream(self, client: openai.AsyncOpenAI, config: ProviderConfig,
                           prompt: str, params: Dict[str, Any]) -> Any:
        known, extra = self.split_params(params)
        return await client.chat.completions.create(
            model=config.model,
            messages=[{"role": "user", "content": prompt}],
            stream=True,
            extra_body=extra or None,
            **known
        )

    def _event_text(self, event: Any) -> Optional[str]:
        choices = getattr(event, "choices", None)
        if not choices:
            return None
        delta = getattr(choices[0], "delta", None)
        return getattr(delta, "content", None)


class GeminiProbe(OpenAIProbe):
    """
    Liveness check for Gemini through its OpenAI-compatible endpoint.

    Only proves the stream is readable: one token, no challenge.
    """

    provider_type = "gemini"
    timeout_seconds = 15.0
    requires_challenge = False
    default_params = {"max_tokens": 1, "temperature": 0}
