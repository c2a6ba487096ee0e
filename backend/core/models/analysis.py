"""
Typed results written onto a task: OCR output and the health assessment.
Wire format (to_dict) is camelCase to match the status payload.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

OCR_RESULT_SCHEMA_VERSION = 1
HEALTH_ASSESSMENT_SCHEMA_VERSION = 1

# healthImpact values
BENEFICIAL = "beneficial"
NEUTRAL = "neutral"
CAUTION = "caution"

MIN_SCORE = 1
MAX_SCORE = 10
NEUTRAL_SCORE = 5


def clamp_score(value: Any, default: int = NEUTRAL_SCORE) -> int:
    """Coerce to an integer score in [1, 10]; non-numeric values become default."""
    try:
        num = float(value)
    except (TypeError, ValueError):
        return default
    if num != num:  # NaN
        return default
    return max(MIN_SCORE, min(MAX_SCORE, round_half_up(num)))


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves away from zero for positive values."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


@dataclass
class ParsedIngredient:
    name: str
    position: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "position": self.position}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParsedIngredient":
        return cls(name=str(data.get("name", "")), position=int(data.get("position", 0)))


@dataclass
class ExtractedIngredients:
    ingredients: List[ParsedIngredient] = field(default_factory=list)
    has_ingredients: bool = False
    extraction_confidence: float = 0.0

    def names(self) -> List[str]:
        return [i.name for i in self.ingredients]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingredients": [i.to_dict() for i in self.ingredients],
            "hasIngredients": self.has_ingredients,
            "extractionConfidence": self.extraction_confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedIngredients":
        return cls(
            ingredients=[ParsedIngredient.from_dict(i) for i in data.get("ingredients") or []],
            has_ingredients=bool(data.get("hasIngredients", False)),
            extraction_confidence=float(data.get("extractionConfidence", 0.0)),
        )


@dataclass
class OcrResult:
    """Text extracted from the label plus the parsed ingredient list."""
    raw_text: str
    confidence: float
    extracted_ingredients: ExtractedIngredients
    source: str = "baidu_ocr"  # "baidu_ocr" | "fallback"
    schema_version: int = OCR_RESULT_SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rawText": self.raw_text,
            "confidence": self.confidence,
            "extractedIngredients": self.extracted_ingredients.to_dict(),
            "source": self.source,
            "schemaVersion": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OcrResult":
        return cls(
            raw_text=str(data.get("rawText", "")),
            confidence=float(data.get("confidence", 0.0)),
            extracted_ingredients=ExtractedIngredients.from_dict(data.get("extractedIngredients") or {}),
            source=str(data.get("source", "baidu_ocr")),
            schema_version=int(data.get("schemaVersion", OCR_RESULT_SCHEMA_VERSION)),
        )


@dataclass
class IngredientScore:
    ingredient: str
    score: int
    reason: str
    category: str
    health_impact: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingredient": self.ingredient,
            "score": self.score,
            "reason": self.reason,
            "category": self.category,
            "healthImpact": self.health_impact,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IngredientScore":
        return cls(
            ingredient=str(data.get("ingredient", "")),
            score=clamp_score(data.get("score")),
            reason=str(data.get("reason", "")),
            category=str(data.get("category", "")),
            health_impact=str(data.get("healthImpact", NEUTRAL)),
        )


@dataclass
class HealthAssessment:
    """Health score of a label, produced by the AI provider or the rule-based engine."""
    overall_score: int
    ingredient_scores: List[IngredientScore]
    analysis_report: str
    recommendations: str
    risk_factors: List[str] = field(default_factory=list)
    benefits: List[str] = field(default_factory=list)
    source: str = "fallback"  # "deepseek" | "fallback"
    schema_version: int = HEALTH_ASSESSMENT_SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallScore": self.overall_score,
            "ingredientScores": [s.to_dict() for s in self.ingredient_scores],
            "analysisReport": self.analysis_report,
            "recommendations": self.recommendations,
            "riskFactors": list(self.risk_factors),
            "benefits": list(self.benefits),
            "source": self.source,
            "schemaVersion": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealthAssessment":
        return cls(
            overall_score=clamp_score(data.get("overallScore")),
            ingredient_scores=[IngredientScore.from_dict(s) for s in data.get("ingredientScores") or []],
            analysis_report=str(data.get("analysisReport", "")),
            recommendations=str(data.get("recommendations", "")),
            risk_factors=list(data.get("riskFactors") or []),
            benefits=list(data.get("benefits") or []),
            source=str(data.get("source", "fallback")),
            schema_version=int(data.get("schemaVersion", HEALTH_ASSESSMENT_SCHEMA_VERSION)),
        )


def result_from_dict(kind: str, data: Optional[Dict[str, Any]]):
    """Rebuild a stored result blob; None stays None."""
    if data is None:
        return None
    if kind == "ocr_result":
        return OcrResult.from_dict(data)
    if kind == "ai_result":
        return HealthAssessment.from_dict(data)
    raise ValueError(f"unknown result kind: {kind}")
