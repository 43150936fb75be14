"""
Rubric scoring of a finished interview transcript.

The language model scores each criterion 0-100 with examples and feedback.
The overall score is recomputed here as the weight-normalised mean of the
criterion scores, so it always agrees with the rubric; the model's own
overall figure is used only when no criterion could be matched.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from .gemini_client import GeminiClient
from .engines.generation import format_criteria
from .schemas import RubricSpec, TranscriptEntry, transcript_to_json


SYSTEM_INSTRUCTION = (
	"You are an expert language assessment specialist with deep knowledge of CEFR "
	"levels and oral proficiency evaluation."
)


def extract_json_block(text: str) -> Dict[str, Any]:
	"""Parse a JSON object from model output, tolerating surrounding prose."""
	try:
		return json.loads(text)
	except (TypeError, ValueError):
		pass
	match = re.search(r"\{[\s\S]*\}", text or "")
	if match:
		try:
			return json.loads(match.group(0))
		except ValueError:
			pass
	raise ValueError("Failed to parse JSON from model output")


def build_scoring_prompt(rubric: RubricSpec, transcript: List[TranscriptEntry]) -> str:
	return f"""
You are an expert language assessor. Score the following oral interview transcript based on the provided rubric criteria.

RUBRIC CRITERIA:
{format_criteria(rubric)}

TRANSCRIPT:
{json.dumps(transcript_to_json(transcript), indent=2, ensure_ascii=False)}

For each criterion, provide:
1. A score from 0-100
2. Specific examples from the transcript supporting your score
3. Brief feedback for improvement

Also provide an overall weighted score based on the criterion weights.

Return STRICT JSON only:
{{
  "overall_score": number,
  "criteria_scores": {{
    "<criterion_name>": {{
      "score": number,
      "examples": ["example1", "example2"],
      "feedback": "specific feedback"
    }}
  }},
  "general_feedback": "overall performance summary and key areas for improvement"
}}
""".strip()


def _safe_float(value: Any) -> Optional[float]:
	try:
		if value is None:
			return None
		return float(value)
	except (TypeError, ValueError):
		return None


def _clamp(score: float) -> float:
	return max(0.0, min(100.0, score))


def weighted_overall(rubric: RubricSpec, criteria_scores: Dict[str, Dict[str, Any]]) -> Optional[float]:
	"""Weight-normalised mean over criteria that received a score.

	Criterion names are matched case-insensitively. Returns None when no
	criterion matched or all matched weights are zero.
	"""
	by_name = {name.strip().lower(): data for name, data in criteria_scores.items()}
	total_weight = 0.0
	total = 0.0
	for criterion in rubric.criteria:
		data = by_name.get(criterion.name.strip().lower())
		if not isinstance(data, dict):
			continue
		score = _safe_float(data.get("score"))
		if score is None:
			continue
		total += _clamp(score) * criterion.weight
		total_weight += criterion.weight
	if total_weight <= 0:
		return None
	return round(total / total_weight, 1)


def parse_scoring(raw: str, rubric: RubricSpec) -> Dict[str, Any]:
	data = extract_json_block(raw)
	criteria_scores = data.get("criteria_scores") or {}
	if not isinstance(criteria_scores, dict):
		criteria_scores = {}
	overall = weighted_overall(rubric, criteria_scores)
	if overall is None:
		model_overall = _safe_float(data.get("overall_score"))
		overall = _clamp(model_overall) if model_overall is not None else 0.0
	feedback = data.get("general_feedback")
	return {
		"overall_score": overall,
		"criteria_scores": criteria_scores,
		"feedback": feedback.strip() if isinstance(feedback, str) else None,
	}


class TranscriptScorer:
	def __init__(self, client: Optional[GeminiClient] = None) -> None:
		self._client = client

	def _get_client(self) -> GeminiClient:
		if self._client is None:
			self._client = GeminiClient()
		return self._client

	async def score(self, rubric: RubricSpec, transcript: List[TranscriptEntry]) -> Dict[str, Any]:
		raw = await self._get_client().generate(
			build_scoring_prompt(rubric, transcript),
			system_instruction=SYSTEM_INSTRUCTION,
			temperature=0.3,
			json_output=True,
		)
		return parse_scoring(raw, rubric)

	async def aclose(self) -> None:
		if self._client is not None:
			await self._client.aclose()
