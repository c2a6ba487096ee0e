"""
DeepSeek chat-completions connector for ingredient health scoring.

The provider only ever improves on the rule-based engine:
- no API key            -> rule-based assessment, no request
- HTTP/timeout/no JSON  -> log, rule-based assessment
- partially valid JSON  -> keep what parses, score missing ingredients as neutral (5)
"""
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from core.config import (
    AI_TIMEOUT,
    PROVIDER_MAX_RETRIES,
    get_deepseek_api_key,
    get_deepseek_model,
    get_deepseek_url,
)
from core.errors import ProviderError
from core.evaluation import fallback_scoring
from core.models.analysis import (
    BENEFICIAL,
    CAUTION,
    NEUTRAL,
    NEUTRAL_SCORE,
    HealthAssessment,
    IngredientScore,
    ParsedIngredient,
    clamp_score,
)
from core.external_apis.http_retry import post_with_retries

logger = logging.getLogger(__name__)

PROVIDER = "deepseek"
MISSING_REASON = "No analysis returned for this ingredient"

_SYSTEM_PROMPT = """You are a professional nutritionist and food-safety expert.
Give objective, evidence-based health assessments of food ingredients.
Reply with a single JSON object and nothing else."""

_PROMPT_TEMPLATE = """Assess the healthiness of the following food ingredients:

Ingredients: {ingredients}

Return JSON with exactly these fields:
{{
  "overallScore": integer 1-10,
  "ingredientScores": [
    {{"ingredient": "name as given", "score": integer 1-10, "reason": "short reason",
      "category": "e.g. grain, added_sugar, fat, protein, salt, additive",
      "healthImpact": "beneficial" | "neutral" | "caution"}}
  ],
  "analysisReport": "overall report with strengths and cautions",
  "recommendations": "advice lines separated by \\n",
  "riskFactors": ["..."],
  "benefits": ["..."]
}}

Scoring: 10 natural and nutritious; 8-9 beneficial; 6-7 neutral;
4-5 limit intake; 2-3 potential health risk; 1 avoid.
Score every ingredient listed. Use integers only."""

_FENCE_RE = re.compile(r"```(?:json)?")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def build_prompt(names: List[str]) -> str:
    return _PROMPT_TEMPLATE.format(ingredients=", ".join(names))


def extract_json_object(content: str) -> Dict[str, Any]:
    """Pull the first {...} block out of model output (markdown fences tolerated)."""
    cleaned = _FENCE_RE.sub("", content or "").strip()
    match = _OBJECT_RE.search(cleaned)
    if not match:
        raise ProviderError(PROVIDER, "no JSON object in response")
    try:
        data = json.loads(match.group(0))
    except ValueError as e:
        raise ProviderError(PROVIDER, f"invalid JSON in response: {e}") from e
    if not isinstance(data, dict):
        raise ProviderError(PROVIDER, "response JSON is not an object")
    return data


def _normalize_impact(value: Any, score: int) -> str:
    text = str(value or "").strip().lower()
    if text in (BENEFICIAL, NEUTRAL, CAUTION):
        return text
    if score >= fallback_scoring.STRENGTH_THRESHOLD:
        return BENEFICIAL
    if score <= fallback_scoring.CAUTION_THRESHOLD:
        return CAUTION
    return NEUTRAL


def _string_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v]
    return []


def salvage_assessment(data: Dict[str, Any], names: List[str]) -> HealthAssessment:
    """
    Build a HealthAssessment from whatever the provider returned.
    Entries that cannot be read are dropped; listed ingredients with no entry
    get a neutral default score.
    """
    raw_scores = data.get("ingredientScores")
    if isinstance(raw_scores, dict):
        raw_scores = raw_scores.get("ingredientScores")
    if not isinstance(raw_scores, list):
        raw_scores = []

    scores: List[IngredientScore] = []
    for idx, item in enumerate(raw_scores):
        if not isinstance(item, dict):
            continue
        name = item.get("ingredient") or (names[idx] if idx < len(names) else None)
        if not name:
            continue
        value = clamp_score(item.get("score"))
        scores.append(IngredientScore(
            ingredient=str(name),
            score=value,
            reason=str(item.get("reason") or "No detailed explanation"),
            category=str(item.get("category") or "other"),
            health_impact=_normalize_impact(item.get("healthImpact"), value),
        ))

    scored = {s.ingredient for s in scores}
    missing = [n for n in names if n not in scored]
    for name in missing:
        scores.append(IngredientScore(
            ingredient=name,
            score=NEUTRAL_SCORE,
            reason=MISSING_REASON,
            category="other",
            health_impact=NEUTRAL,
        ))
    if missing:
        logger.info("AI_ANALYSIS filled %d missing ingredient scores with neutral defaults", len(missing))

    if data.get("overallScore") is not None:
        overall = clamp_score(data.get("overallScore"),
                              default=fallback_scoring.overall_score([s.score for s in scores]))
    else:
        overall = fallback_scoring.overall_score([s.score for s in scores])

    report = data.get("analysisReport")
    if not isinstance(report, str) or not report.strip():
        report = fallback_scoring.build_report(scores, overall)

    recommendations = data.get("recommendations")
    if isinstance(recommendations, list):
        recommendations = "\n".join(str(r) for r in recommendations if r)
    if not isinstance(recommendations, str) or not recommendations.strip():
        recommendations = fallback_scoring.build_recommendations(scores, overall)

    return HealthAssessment(
        overall_score=overall,
        ingredient_scores=scores,
        analysis_report=report,
        recommendations=recommendations,
        risk_factors=_string_list(data.get("riskFactors")),
        benefits=_string_list(data.get("benefits")),
        source="deepseek",
    )


def _names(ingredients: Iterable[Any]) -> List[str]:
    return [i.name if isinstance(i, ParsedIngredient) else str(i) for i in ingredients]


class DeepSeekClient:
    """AI adapter: score_ingredients(ingredients) -> HealthAssessment, never raises ProviderError."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: int = AI_TIMEOUT,
        max_retries: int = PROVIDER_MAX_RETRIES,
    ):
        self.api_key = get_deepseek_api_key() if api_key is None else api_key
        self.url = url or get_deepseek_url()
        self.model = model or get_deepseek_model()
        self.timeout = timeout
        self.max_retries = max_retries

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _call_provider(self, prompt: str) -> str:
        resp, err = post_with_retries(
            self.url,
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "temperature": 0,
                "max_tokens": 2000,
                "stream": False,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
            max_retries=self.max_retries,
        )
        if resp is None:
            raise ProviderError(PROVIDER, f"request failed: {err}")
        if resp.status_code != 200:
            raise ProviderError(PROVIDER, f"HTTP {resp.status_code}")
        try:
            body = resp.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(PROVIDER, "unexpected response shape") from e
        if not isinstance(content, str) or not content.strip():
            raise ProviderError(PROVIDER, "empty message content")
        return content

    def score_ingredients(self, ingredients: Iterable[Any]) -> HealthAssessment:
        names = _names(ingredients)
        if not self.is_configured:
            logger.info("AI_ANALYSIS not configured, using rule-based scoring for %d ingredients", len(names))
            return fallback_scoring.score(names)
        try:
            content = self._call_provider(build_prompt(names))
            data = extract_json_object(content)
        except ProviderError as e:
            logger.warning("AI_ANALYSIS provider failed, using rule-based scoring: %s", e)
            return fallback_scoring.score(names)
        assessment = salvage_assessment(data, names)
        logger.info(
            "AI_ANALYSIS scored ingredients=%d overall=%d",
            len(assessment.ingredient_scores), assessment.overall_score,
        )
        return assessment
