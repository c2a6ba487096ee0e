"""
Rule-based health scoring used when the AI provider is not configured or fails.

Each ingredient is matched against an ordered keyword table; the first
category that matches wins, unmatched ingredients are neutral (5).
overall = round(mean(scores)) clamped to [1, 10].
Fully deterministic: the same ingredient list always yields the same assessment.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple, Union

from core.models.analysis import (
    BENEFICIAL,
    CAUTION,
    NEUTRAL,
    NEUTRAL_SCORE,
    HealthAssessment,
    IngredientScore,
    ParsedIngredient,
    clamp_score,
    round_half_up,
)

STRENGTH_THRESHOLD = 7
CAUTION_THRESHOLD = 4


@dataclass(frozen=True)
class ScoringRule:
    category: str
    score: int
    health_impact: str
    reason: str
    keywords: Tuple[str, ...]


# Order matters: "whole wheat sugar cookie" is scored by the first matching rule.
SCORING_RULES: Tuple[ScoringRule, ...] = (
    ScoringRule(
        "grain", 7, BENEFICIAL,
        "Provides carbohydrates and some protein; a staple energy source",
        ("小麦", "面粉", "燕麦", "全麦", "糙米", "荞麦", "玉米粉",
         "wheat", "flour", "oat", "oats", "barley", "whole grain", "rye", "buckwheat"),
    ),
    ScoringRule(
        "added_sugar", 3, CAUTION,
        "High in sugar; excess intake is linked to obesity and diabetes risk",
        ("糖", "甜", "蜜", "糖浆",
         "sugar", "syrup", "glucose", "fructose", "sucrose", "dextrose", "maltose", "honey"),
    ),
    ScoringRule(
        "fat", 5, NEUTRAL,
        "Supplies essential fatty acids; watch the amount consumed",
        ("油", "脂", "黄油", "起酥油",
         "oil", "fat", "butter", "shortening", "lard", "margarine"),
    ),
    ScoringRule(
        "protein", 8, BENEFICIAL,
        "Good-quality protein source with high nutritional value",
        ("鸡蛋", "蛋", "牛奶", "奶粉", "乳清", "大豆蛋白", "肉",
         "egg", "eggs", "milk", "whey", "soy protein", "chicken", "beef", "fish"),
    ),
    ScoringRule(
        "salt", 4, CAUTION,
        "Necessary seasoning, but excess sodium is bad for cardiovascular health",
        ("盐", "钠",
         "salt", "sodium"),
    ),
    ScoringRule(
        "additive", 3, CAUTION,
        "Artificial additive; keep intake moderate",
        ("防腐", "色素", "香精", "香料", "甜味剂", "苯甲酸", "山梨酸",
         "preservative", "artificial", "flavour", "flavor", "flavouring", "flavoring",
         "colour", "color", "colouring", "coloring",
         "benzoate", "sorbate", "nitrite", "aspartame", "sucralose"),
    ),
    ScoringRule(
        "fortification", 8, BENEFICIAL,
        "Beneficial nutritional fortification",
        ("维生素", "矿物质", "钙", "铁", "锌",
         "vitamin", "mineral", "calcium", "iron", "zinc"),
    ),
)

UNMATCHED_REASON = "No detailed health information available for this ingredient"
UNMATCHED_CATEGORY = "other"

_RISK_BY_CATEGORY = {
    "added_sugar": "High sugar intake",
    "additive": "Artificial additives",
    "salt": "High sodium intake",
}
_BENEFIT_BY_CATEGORY = {
    "protein": "Provides quality protein",
    "grain": "Provides basic nutrition and energy",
    "fortification": "Adds vitamins or minerals",
}
_DEFAULT_BENEFIT = "Provides basic energy"

IngredientLike = Union[str, ParsedIngredient]


def _is_ascii(word: str) -> bool:
    return all(ord(c) < 128 for c in word)


def _keyword_match(text: str, keyword: str) -> bool:
    """Word-boundary match (plural tolerant) for latin keywords, substring for CJK."""
    if _is_ascii(keyword):
        return bool(re.search(r"\b" + re.escape(keyword) + r"(?:e?s)?\b", text))
    return keyword in text


def score_ingredient(name: str) -> IngredientScore:
    """Score a single ingredient name with the first matching rule."""
    text = (name or "").lower()
    for rule in SCORING_RULES:
        if any(_keyword_match(text, kw) for kw in rule.keywords):
            return IngredientScore(
                ingredient=name,
                score=rule.score,
                reason=rule.reason,
                category=rule.category,
                health_impact=rule.health_impact,
            )
    return IngredientScore(
        ingredient=name,
        score=NEUTRAL_SCORE,
        reason=UNMATCHED_REASON,
        category=UNMATCHED_CATEGORY,
        health_impact=NEUTRAL,
    )


def overall_score(scores: Sequence[int]) -> int:
    """round(mean(scores)) clamped to [1, 10]; neutral when there is nothing to score."""
    if not scores:
        return NEUTRAL_SCORE
    return clamp_score(round_half_up(sum(scores) / len(scores)))


def _health_level(overall: int) -> str:
    if overall >= 8:
        return "healthy"
    if overall >= 6:
        return "moderately healthy"
    return "less healthy"


def build_report(ingredient_scores: List[IngredientScore], overall: int) -> str:
    strengths = [s.ingredient for s in ingredient_scores if s.score >= STRENGTH_THRESHOLD]
    cautions = [s.ingredient for s in ingredient_scores if s.score <= CAUTION_THRESHOLD]
    if overall >= 7:
        advice = "Fine to eat regularly in reasonable amounts."
    elif overall >= 5:
        advice = "Acceptable as an occasional food; avoid large or frequent servings."
    else:
        advice = "Eat with caution and consider healthier alternatives."
    lines = [
        f"This product contains {len(ingredient_scores)} ingredients. "
        f"Overall health score is {overall}/10 ({_health_level(overall)}).",
        "",
        "Strengths: " + (", ".join(strengths) + " have good nutritional value." if strengths
                         else "no notably beneficial ingredients."),
        "",
        "Cautions: " + (", ".join(cautions) + " should be consumed in moderation." if cautions
                        else "the ingredient list is relatively safe."),
        "",
        "Advice: " + advice,
    ]
    return "\n".join(lines)


def build_recommendations(ingredient_scores: List[IngredientScore], overall: int) -> str:
    categories = {s.category for s in ingredient_scores}
    items = ["Eat in moderation and avoid overconsumption"]
    if "added_sugar" in categories:
        items.append("Watch your sugar intake and balance it with exercise")
    if "additive" in categories:
        items.append("Prefer alternatives with more natural ingredients")
    items.append("Pair with fresh fruit and vegetables for better nutrition")
    items.append("Check the nutrition label for exact amounts")
    if overall <= 5:
        items.append("Consider choosing a healthier alternative")
    else:
        items.append("Can be part of a balanced diet")
    return "\n".join(f"{i}. {text}" for i, text in enumerate(items, start=1))


def _unique(items: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def risk_factors(ingredient_scores: List[IngredientScore]) -> List[str]:
    return _unique(
        _RISK_BY_CATEGORY[s.category]
        for s in ingredient_scores
        if s.score <= CAUTION_THRESHOLD and s.category in _RISK_BY_CATEGORY
    )


def benefits(ingredient_scores: List[IngredientScore]) -> List[str]:
    found = _unique(
        _BENEFIT_BY_CATEGORY[s.category]
        for s in ingredient_scores
        if s.score >= STRENGTH_THRESHOLD and s.category in _BENEFIT_BY_CATEGORY
    )
    return found or [_DEFAULT_BENEFIT]


def _names(ingredients: Iterable[IngredientLike]) -> List[str]:
    return [i.name if isinstance(i, ParsedIngredient) else str(i) for i in ingredients]


def score(ingredients: Iterable[IngredientLike]) -> HealthAssessment:
    """Deterministic health assessment for a list of ingredient names or ParsedIngredients."""
    ingredient_scores = [score_ingredient(name) for name in _names(ingredients)]
    overall = overall_score([s.score for s in ingredient_scores])
    return HealthAssessment(
        overall_score=overall,
        ingredient_scores=ingredient_scores,
        analysis_report=build_report(ingredient_scores, overall),
        recommendations=build_recommendations(ingredient_scores, overall),
        risk_factors=risk_factors(ingredient_scores),
        benefits=benefits(ingredient_scores),
        source="fallback",
    )
