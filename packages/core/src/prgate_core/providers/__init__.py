from __future__ import annotations

from prgate_core.providers.base import BaseAnalyzer


def get_analyzer(config: dict) -> BaseAnalyzer:
    """Instantiate the analyzer selected by ``config["analyzer"]``."""
    name = config["analyzer"]
    model = config.get("model_name")
    if name == "openai":
        from prgate_core.providers.openai import OpenAIAnalyzer

        return OpenAIAnalyzer(api_key=config["openai_api_key"], model=model)
    if name == "anthropic":
        from prgate_core.providers.anthropic import AnthropicAnalyzer

        return AnthropicAnalyzer(api_key=config["anthropic_api_key"], model=model)
    raise ValueError(f"Unknown analyzer: {name!r}. Choose 'openai' or 'anthropic'.")
