"""Tests for analyzer implementations.

Shared behaviour (analyze, _parse, prompt building) lives in BaseAnalyzer and
is tested once via a lightweight stub. Provider-specific tests cover only the
SDK call and how SDK errors are translated.
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from prgate_core.errors import AnalysisTimeout, MalformedOutput, ProviderError
from prgate_core.gh.pull_request import FileChange
from prgate_core.providers import get_analyzer
from prgate_core.providers.anthropic import AnthropicAnalyzer
from prgate_core.providers.base import NO_CHANGES_SUMMARY, BaseAnalyzer
from prgate_core.providers.openai import OpenAIAnalyzer
from prgate_store.models import Category, Severity

VALID_JSON = json.dumps(
    {
        "summary": "Adds login throttling",
        "riskScore": 35,
        "comments": [
            {
                "file": "src/auth.py",
                "line": 12,
                "severity": "high",
                "category": "bug",
                "message": "Counter is never reset",
                "suggestion": "Reset on successful login",
            },
            {"file": "src/auth.py", "line": 3, "severity": "low", "category": "style", "message": "Unused import"},
        ],
    }
)


def _files():
    return [
        FileChange(filename="src/auth.py", status="modified", additions=3, deletions=1, patch="@@ -1 +1 @@\n+x = 1"),
        FileChange(filename="logo.png", status="added"),
    ]


class _StubAnalyzer(BaseAnalyzer):
    MODEL = "stub-model"

    def __init__(self, response=VALID_JSON):
        super().__init__()
        self.response = response
        self.calls = []

    def _call_api(self, system_prompt: str, user_prompt: str, timeout) -> str:
        self.calls.append((system_prompt, user_prompt, timeout))
        return self.response


# ---------------------------------------------------------------------------
# Shared behaviour, tested once through the stub, not per provider
# ---------------------------------------------------------------------------


class TestBaseAnalyzerAnalyze:
    def test_returns_validated_result(self):
        result = _StubAnalyzer().analyze("Throttle logins", _files())

        assert result.summary == "Adds login throttling"
        assert result.risk_score == 35
        assert [f.line for f in result.findings] == [12, 3]
        assert result.findings[0].severity is Severity.HIGH
        assert result.findings[0].category is Category.BUG
        assert result.findings[1].suggestion is None

    def test_binary_file_not_sent_to_model(self):
        analyzer = _StubAnalyzer()
        analyzer.analyze("Throttle logins", _files())

        _, user_prompt, _ = analyzer.calls[0]
        assert "src/auth.py" in user_prompt
        assert "logo.png" not in user_prompt

    def test_no_patched_files_skips_model(self):
        analyzer = _StubAnalyzer()
        result = analyzer.analyze("Add logo", [FileChange(filename="logo.png", status="added")])

        assert analyzer.calls == []
        assert result.risk_score == 0
        assert result.findings == []
        assert result.summary == NO_CHANGES_SUMMARY

    def test_timeout_passed_to_call(self):
        analyzer = _StubAnalyzer()
        analyzer.analyze("t", _files(), timeout=42)
        assert analyzer.calls[0][2] == 42

    def test_model_defaults_to_class_model(self):
        assert _StubAnalyzer().model == "stub-model"


class TestBaseAnalyzerParse:
    def test_strips_markdown_code_fences(self):
        result = _StubAnalyzer()._parse(f"```json\n{VALID_JSON}\n```")
        assert result.risk_score == 35

    def test_preserves_code_blocks_inside_values(self):
        payload = json.dumps(
            {
                "summary": "s",
                "riskScore": 10,
                "comments": [
                    {
                        "file": "a.py",
                        "line": 5,
                        "severity": "medium",
                        "category": "suggestion",
                        "message": "Use this instead:\n```python\nfoo()\n```",
                    }
                ],
            }
        )
        result = _StubAnalyzer()._parse(f"```json\n{payload}\n```")
        assert "```python" in result.findings[0].message

    def test_invalid_json_is_malformed(self):
        with pytest.raises(MalformedOutput):
            _StubAnalyzer()._parse("not json at all")

    def test_empty_response_is_malformed(self):
        with pytest.raises(MalformedOutput):
            _StubAnalyzer()._parse("   ")

    def test_risk_score_out_of_range_is_malformed(self):
        with pytest.raises(MalformedOutput):
            _StubAnalyzer()._parse(json.dumps({"summary": "s", "riskScore": 150, "comments": []}))

    def test_unknown_severity_is_malformed(self):
        bad = {
            "summary": "s",
            "riskScore": 1,
            "comments": [{"file": "a", "line": 1, "severity": "major", "category": "bug", "message": "m"}],
        }
        with pytest.raises(MalformedOutput):
            _StubAnalyzer()._parse(json.dumps(bad))

    def test_missing_summary_is_malformed(self):
        with pytest.raises(MalformedOutput):
            _StubAnalyzer()._parse(json.dumps({"riskScore": 1, "comments": []}))

    @pytest.mark.parametrize("risk", ["85", 85.0, True])
    def test_risk_score_must_be_an_integer(self, risk):
        with pytest.raises(MalformedOutput):
            _StubAnalyzer()._parse(json.dumps({"summary": "s", "riskScore": risk, "comments": []}))

    @pytest.mark.parametrize("line", ["12", 12.5, False])
    def test_comment_line_must_be_an_integer(self, line):
        bad = {
            "summary": "s",
            "riskScore": 1,
            "comments": [{"file": "a", "line": line, "severity": "low", "category": "bug", "message": "m"}],
        }
        with pytest.raises(MalformedOutput):
            _StubAnalyzer()._parse(json.dumps(bad))

    def test_non_string_message_is_malformed(self):
        bad = {
            "summary": "s",
            "riskScore": 1,
            "comments": [{"file": "a", "line": 1, "severity": "low", "category": "bug", "message": 42}],
        }
        with pytest.raises(MalformedOutput):
            _StubAnalyzer()._parse(json.dumps(bad))

    def test_null_suggestion_means_none(self):
        payload = {
            "summary": "s",
            "riskScore": 1,
            "comments": [
                {"file": "a", "line": 1, "severity": "low", "category": "bug", "message": "m", "suggestion": None}
            ],
        }
        result = _StubAnalyzer()._parse(json.dumps(payload))
        assert result.findings[0].suggestion is None

    def test_top_level_array_is_malformed(self):
        with pytest.raises(MalformedOutput):
            _StubAnalyzer()._parse("[]")


class TestBaseAnalyzerPrompts:
    def test_system_prompt_describes_schema(self):
        prompt = _StubAnalyzer()._build_system_prompt()
        assert "riskScore" in prompt
        assert "severity" in prompt

    def test_user_prompt_contains_title_file_and_diff(self):
        prompt = _StubAnalyzer()._build_user_prompt("Fix auth", [_files()[0]])
        assert "**Title:** Fix auth" in prompt
        assert "### src/auth.py (modified)" in prompt
        assert "+x = 1" in prompt


# ---------------------------------------------------------------------------
# Provider-specific
# ---------------------------------------------------------------------------


class TestOpenAIAnalyzer:
    def test_raises_import_error_without_sdk(self):
        import prgate_core.providers.openai as openai_mod

        with patch.object(openai_mod, "_openai", None):
            with pytest.raises(ImportError):
                OpenAIAnalyzer(api_key="key")

    def test_model_is_gpt(self):
        assert OpenAIAnalyzer.MODEL == "gpt-4o-mini"

    def test_call_api_requests_json(self):
        analyzer = OpenAIAnalyzer(api_key="key")
        analyzer.client = MagicMock()
        analyzer.client.chat.completions.create.return_value.choices = [MagicMock(message=MagicMock(content=VALID_JSON))]

        result = analyzer.analyze("t", _files(), timeout=10)

        kwargs = analyzer.client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.3
        assert kwargs["timeout"] == 10
        assert result.risk_score == 35

    def test_timeout_translated(self):
        import openai

        analyzer = OpenAIAnalyzer(api_key="key")
        analyzer.client = MagicMock()
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        analyzer.client.chat.completions.create.side_effect = openai.APITimeoutError(request=request)

        with pytest.raises(AnalysisTimeout, match="timeout"):
            analyzer.analyze("t", _files(), timeout=5)

    def test_api_error_translated(self):
        import openai

        analyzer = OpenAIAnalyzer(api_key="key")
        analyzer.client = MagicMock()
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        analyzer.client.chat.completions.create.side_effect = openai.APIConnectionError(request=request)

        with pytest.raises(ProviderError):
            analyzer.analyze("t", _files())

    def test_no_choices_is_provider_error(self):
        analyzer = OpenAIAnalyzer(api_key="key")
        analyzer.client = MagicMock()
        analyzer.client.chat.completions.create.return_value.choices = []

        with pytest.raises(ProviderError):
            analyzer.analyze("t", _files())


class TestAnthropicAnalyzer:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            with pytest.raises(ImportError):
                AnthropicAnalyzer(api_key="key")

    def test_model_is_claude(self):
        assert "claude" in AnthropicAnalyzer.MODEL

    def test_call_api_joins_text_blocks(self):
        from anthropic.types import TextBlock

        analyzer = AnthropicAnalyzer(api_key="key")
        analyzer.client = MagicMock()
        analyzer.client.messages.create.return_value.content = [TextBlock(type="text", text=VALID_JSON)]

        result = analyzer.analyze("t", _files(), timeout=7)

        kwargs = analyzer.client.messages.create.call_args.kwargs
        assert kwargs["system"]
        assert kwargs["timeout"] == 7
        assert result.summary == "Adds login throttling"

    def test_timeout_translated(self):
        import anthropic

        analyzer = AnthropicAnalyzer(api_key="key")
        analyzer.client = MagicMock()
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        analyzer.client.messages.create.side_effect = anthropic.APITimeoutError(request=request)

        with pytest.raises(AnalysisTimeout, match="timeout"):
            analyzer.analyze("t", _files(), timeout=5)


class TestGetAnalyzer:
    def test_selects_openai(self):
        analyzer = get_analyzer({"analyzer": "openai", "openai_api_key": "k", "model_name": None})
        assert isinstance(analyzer, OpenAIAnalyzer)
        assert analyzer.model == "gpt-4o-mini"

    def test_model_name_override(self):
        analyzer = get_analyzer({"analyzer": "anthropic", "anthropic_api_key": "k", "model_name": "claude-x"})
        assert isinstance(analyzer, AnthropicAnalyzer)
        assert analyzer.model == "claude-x"

    def test_unknown_analyzer_raises(self):
        with pytest.raises(ValueError, match="Unknown analyzer"):
            get_analyzer({"analyzer": "llama"})
