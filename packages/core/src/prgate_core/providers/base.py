"""Base analyzer implementing the Template Method pattern.

All providers share the same review algorithm:
    analyze() → reviewable files (short-circuit when none)
              → _build_system_prompt() + _build_user_prompt()
              → _call_api()   ← only this differs per provider
              → _parse() → pydantic validation → ReviewResult

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response, raising
    AnalysisTimeout / ProviderError for SDK failures

Nothing is retried here: a failed analysis fails the review and
the user retries it explicitly.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from prgate_core.errors import MalformedOutput
from prgate_store.models import Category, Finding, Severity

if TYPE_CHECKING:
    from prgate_core.gh.pull_request import FileChange

logger = logging.getLogger(__name__)

_MAX_TOKENS = 2000

NO_CHANGES_SUMMARY = "No changes to review (binary files or empty diff)."


@dataclass
class ReviewResult:
    summary: str
    risk_score: int
    findings: list[Finding] = field(default_factory=list)


def empty_result() -> ReviewResult:
    """Zero-risk result used when there is nothing to send to the model."""
    return ReviewResult(summary=NO_CHANGES_SUMMARY, risk_score=0)


class _CommentPayload(BaseModel):
    model_config = ConfigDict(strict=True)

    file: str
    line: int
    severity: Literal["critical", "high", "medium", "low"]
    category: Literal["bug", "security", "performance", "style", "suggestion"]
    message: str
    # Models emit "suggestion": null as often as they omit it; both mean none.
    suggestion: Optional[str] = None


class _ReviewPayload(BaseModel):
    model_config = ConfigDict(strict=True)

    summary: str
    riskScore: int = Field(ge=0, le=100)
    comments: list[_CommentPayload]


SYSTEM_PROMPT = """You are an expert code reviewer. Analyze the provided pull request diff and provide a structured review.

Your review should:
1. Identify bugs, security issues, performance problems, and code style issues
2. Provide a brief summary of the changes
3. Assign a risk score (0-100) based on the complexity and potential issues
4. Give specific, actionable feedback with line numbers

Respond with valid JSON matching this schema:
{
  "summary": "Brief summary of changes and overall assessment",
  "riskScore": 0-100,
  "comments": [
    {
      "file": "path/to/file.py",
      "line": 42,
      "severity": "critical" | "high" | "medium" | "low",
      "category": "bug" | "security" | "performance" | "style" | "suggestion",
      "message": "What the issue is",
      "suggestion": "How to fix it (optional)"
    }
  ]
}

Severity guide:
- critical: Security vulnerabilities, data loss, crashes
- high: Bugs that will cause issues in production
- medium: Should be fixed but won't break things
- low: Style issues, minor improvements

Be concise but specific. Reference exact line numbers from the diff."""


class BaseAnalyzer(ABC):
    MODEL: str = ""
    MAX_TOKENS: int = _MAX_TOKENS

    def __init__(self, model: str | None = None):
        self.model = model or self.MODEL

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    def analyze(self, pr_title: str, files: list[FileChange], timeout: float | None = None) -> ReviewResult:
        """Review the patched files of a pull request.

        Files without patch content (binary, too large for GitHub to diff)
        are dropped first; if nothing is left the model is not called at all.
        """
        patched = [f for f in files if f.patch]
        if not patched:
            logger.info("No patch content for %r; skipping model call", pr_title)
            return empty_result()

        system = self._build_system_prompt()
        user = self._build_user_prompt(pr_title, patched)
        raw = self._call_api(system, user, timeout)
        return self._parse(raw)

    # ------------------------------------------------------------------ #
    # Abstract, implemented by each provider                             #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str, timeout: float | None) -> str:
        """Make a single API call and return the raw text response.

        Raise AnalysisTimeout when the SDK reports a timeout and
        ProviderError for any other SDK failure.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _build_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def _build_user_prompt(self, pr_title: str, files: list[FileChange]) -> str:
        diff_content = "\n\n".join(f"### {f.filename} ({f.status})\n```diff\n{f.patch}\n```" for f in files)
        return f"""Review this pull request:

**Title:** {pr_title}

**Changes:**
{diff_content}"""

    def _parse(self, raw: str | None) -> ReviewResult:
        """Parse and validate the model's raw text into a ReviewResult.

        Anything that is not a JSON document matching the review schema is
        MalformedOutput; fields are never guessed or coerced into range.
        """
        if not raw or not raw.strip():
            raise MalformedOutput(f"{self.__class__.__name__}: empty response from model")

        # Strip only the outer ```json ... ``` fence, not backticks inside values.
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.warning("%s: response is not JSON: %s", self.__class__.__name__, raw[:200])
            raise MalformedOutput(f"Model response is not valid JSON: {e.msg}") from e

        try:
            payload = _ReviewPayload.model_validate_json(cleaned)
        except ValidationError as e:
            logger.warning("%s: response failed schema validation: %s", self.__class__.__name__, e)
            raise MalformedOutput(f"Model response does not match the review schema ({e.error_count()} error(s))") from e

        return ReviewResult(
            summary=payload.summary,
            risk_score=payload.riskScore,
            findings=[
                Finding(
                    file=c.file,
                    line=c.line,
                    severity=Severity(c.severity),
                    category=Category(c.category),
                    message=c.message,
                    suggestion=c.suggestion,
                )
                for c in payload.comments
            ],
        )
