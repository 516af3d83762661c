from __future__ import annotations

from prgate_core.errors import AnalysisTimeout, ProviderError
from prgate_core.providers.base import BaseAnalyzer


class AnthropicAnalyzer(BaseAnalyzer):
    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, model: str | None = None):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this analyzer. "
                "Install it with: pip install 'prgate[anthropic]'"
            )
        super().__init__(model)
        self.client = Anthropic(api_key=api_key, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str, timeout: float | None) -> str:
        # Imported inside the method because the anthropic package is optional;
        # __init__ already validated it is installed before we reach here.
        import anthropic
        from anthropic.types import TextBlock

        try:
            response = self.client.messages.create(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=self.TEMPERATURE,
                max_tokens=self.MAX_TOKENS,
                timeout=timeout,
            )
        except anthropic.APITimeoutError as e:
            raise AnalysisTimeout(f"Anthropic analysis timeout after {timeout}s") from e
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic request failed: {type(e).__name__}") from e

        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
