from __future__ import annotations

try:
    import openai as _openai
except ImportError:
    _openai = None  # type: ignore[assignment]

from prgate_core.errors import AnalysisTimeout, ProviderError
from prgate_core.providers.base import BaseAnalyzer


class OpenAIAnalyzer(BaseAnalyzer):
    MODEL = "gpt-4o-mini"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, model: str | None = None):
        if _openai is None:
            raise ImportError(
                "The 'openai' package is required for this analyzer. Install it with: pip install 'prgate[openai]'"
            )
        super().__init__(model)
        # max_retries=0: a failed analysis fails the review; retries are user-initiated.
        self.client = _openai.OpenAI(api_key=api_key, max_retries=0)

    def _call_api(self, system_prompt: str, user_prompt: str, timeout: float | None) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=self.TEMPERATURE,
                max_tokens=self.MAX_TOKENS,
                timeout=timeout,
            )
        except _openai.APITimeoutError as e:
            raise AnalysisTimeout(f"OpenAI analysis timeout after {timeout}s") from e
        except _openai.APIError as e:
            raise ProviderError(f"OpenAI request failed: {type(e).__name__}") from e

        if not response.choices:
            raise ProviderError("OpenAI returned no choices")
        return response.choices[0].message.content or ""
