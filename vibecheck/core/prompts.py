"""Prompt templates for content analysis."""

from __future__ import annotations

ANALYSIS_SYSTEM_PROMPT = """You are an AI content analyzer for video creators. Analyze the provided text and respond ONLY with a JSON object (no markdown, no code blocks) in this exact format:

{
  "sentiment": "positive/neutral/negative",
  "sentimentScore": 0-100,
  "clarity": "clear/moderate/unclear",
  "clarityNotes": "brief explanation",
  "reputationRisk": "low/medium/high",
  "riskFactors": ["factor1", "factor2"],
  "suggestions": ["suggestion1", "suggestion2"]
}

Be concise and actionable."""

# The model judges relevance itself; nothing downstream verifies the claim.
IMAGE_COMPARISON_PROMPT = """An image is attached alongside the text. Also:
1. Describe the main subject of the image.
2. Compare the image subject with the topic of the text.
3. If the image does not match the text (for example a thumbnail unrelated to the content), list the mismatch in "riskFactors" and set "reputationRisk" to at least "medium".

Add this field to the JSON object:
  "imageAnalysis": "what the image shows and whether it matches the text"
"""


def build_analysis_system_prompt(*, with_images: bool) -> str:
    if not with_images:
        return ANALYSIS_SYSTEM_PROMPT
    return f"{ANALYSIS_SYSTEM_PROMPT}\n\n{IMAGE_COMPARISON_PROMPT}"


def build_analysis_user_prompt(text: str) -> str:
    return f"Analyze this content:\n\n{text}"
