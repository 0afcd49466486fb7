from typing import Any, Dict, Optional

import anthropic

from checkcx.schemas.check import ProviderConfig
from checkcx.services.probes.base import ProviderProbe, strip_path_suffix


class AnthropicProbe(ProviderProbe):
    """Challenge-verified check over the native Messages streaming API"""

    provider_type = "anthropic"
    timeout_seconds = 45.0
    requires_challenge = True
    default_params = {"max_tokens": 16}
    abort_errors = (anthropic.APITimeoutError,)

    def derive_base_url(self, endpoint: str) -> str:
        # Configs store the full path, the SDK wants the host part
        return strip_path_suffix(endpoint, r"/v1/messages/?$")

    def _build_client(self, base_url: str, config: ProviderConfig) -> anthropic.AsyncAnthropic:
        return anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=base_url,
            default_headers=self.default_headers(config),
        )

    async def _open_stream(self, client: anthropic.AsyncAnthropic, config: ProviderConfig,
                           prompt: str, params: Dict[str, Any]) -> Any:
        known, extra = self.split_params(params)
        return await client.messages.create(
            model=config.model,
            messages=[{"role": "user", "content": prompt}],
            stream=True,
            extra_body=extra or None,
            **known
        )

    def _event_text(self, event: Any) -> Optional[str]:
        if getattr(event, "type", None) != "content_block_delta":
            return None
        delta = getattr(event, "delta", None)
        if getattr(delta, "type", None) != "text_delta":
            return None
        return delta.text
