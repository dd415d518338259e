"""Turn raw model text into a validated :class:`AnalysisResult`."""

from __future__ import annotations

import json
import logging
import re
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from vibecheck.telemetry import ANALYSES_DEGRADED_TOTAL

from .errors import MalformedResponseError
from .types import ProviderKind

logger = logging.getLogger(__name__)

UNPARSEABLE_SUGGESTION = "Unable to parse structured analysis"

_FENCE_PATTERN = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*\r?\n?")


def _lowercase(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


Sentiment = Annotated[
    Literal["positive", "neutral", "negative"], BeforeValidator(_lowercase)
]
Clarity = Annotated[Literal["clear", "moderate", "unclear"], BeforeValidator(_lowercase)]
RiskLevel = Annotated[Literal["low", "medium", "high"], BeforeValidator(_lowercase)]


def _none_as(default_factory):
    def _coerce(value: Any) -> Any:
        return default_factory() if value is None else value

    return BeforeValidator(_coerce)


StringList = Annotated[list[str], _none_as(list)]
Notes = Annotated[str, _none_as(str)]


class AnalysisResult(BaseModel):
    """Structured sentiment, clarity and reputation-risk assessment."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    sentiment: Sentiment
    sentiment_score: int = Field(ge=0, le=100)
    clarity: Clarity
    clarity_notes: Notes = ""
    reputation_risk: RiskLevel
    risk_factors: StringList = Field(default_factory=list)
    suggestions: StringList = Field(default_factory=list)
    image_analysis: str | None = None
    provider: ProviderKind
    model: str
    raw_response: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialise with camelCase keys, omitting unset optional fields."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def strip_code_fences(text: str) -> str:
    """Remove Markdown code-fence markers and surrounding whitespace."""

    return _FENCE_PATTERN.sub("", text).strip()


def parse_analysis(text: str, *, provider: ProviderKind, model: str) -> AnalysisResult:
    """Validate ``text`` as an analysis object or raise :class:`MalformedResponseError`."""

    try:
        parsed = json.loads(strip_code_fences(text))
    except (ValueError, RecursionError) as exc:
        # also covers oversized integers and deep nesting
        raise MalformedResponseError(f"response is not JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedResponseError(
            f"expected a JSON object, got {type(parsed).__name__}"
        )
    merged = {**parsed, "provider": provider, "model": model}
    try:
        return AnalysisResult.model_validate(merged)
    except ValidationError as exc:
        raise MalformedResponseError(
            f"response failed schema validation ({exc.error_count()} errors)"
        ) from exc


def degraded_result(text: str, *, provider: ProviderKind, model: str) -> AnalysisResult:
    return AnalysisResult(
        sentiment="neutral",
        sentiment_score=50,
        clarity="moderate",
        clarity_notes=text,
        reputation_risk="low",
        risk_factors=[],
        suggestions=[UNPARSEABLE_SUGGESTION],
        provider=provider,
        model=model,
        raw_response=text,
    )


def normalize_response(
    text: str, *, provider: ProviderKind, model: str
) -> AnalysisResult:
    """Parse model output, degrading to a neutral result when it is malformed.

    Never raises for bad model output; the raw text is preserved in
    ``raw_response`` and ``clarity_notes`` of the degraded result.
    """

    try:
        return parse_analysis(text, provider=provider, model=model)
    except MalformedResponseError as exc:
        logger.warning(
            "normalizer.degraded",
            extra={
                "provider": provider.value,
                "model": model,
                "reason": str(exc),
                "response_chars": len(text),
            },
        )
        ANALYSES_DEGRADED_TOTAL.labels(provider=provider.value).inc()
        return degraded_result(text, provider=provider, model=model)
