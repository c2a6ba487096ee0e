"""
Unit tests for the rule-based health scoring engine.
Run from backend: python -m pytest tests/test_fallback_scoring.py -v
"""


def test_wheat_sugar_egg_overall_six():
    """7, 3, 8 -> mean 6."""
    from core.evaluation.fallback_scoring import score
    res = score(["小麦粉", "白砂糖", "鸡蛋"])
    assert [s.score for s in res.ingredient_scores] == [7, 3, 8]
    assert res.overall_score == 6
    assert len(res.ingredient_scores) == 3
    assert res.source == "fallback"


def test_sample_label_categories():
    from core.evaluation.fallback_scoring import score_ingredient
    expected = {
        "小麦粉": ("grain", 7, "beneficial"),
        "白砂糖": ("added_sugar", 3, "caution"),
        "植物油": ("fat", 5, "neutral"),
        "鸡蛋": ("protein", 8, "beneficial"),
        "食用盐": ("salt", 4, "caution"),
        "食用香精": ("additive", 3, "caution"),
        "维生素C": ("fortification", 8, "beneficial"),
    }
    for name, (category, value, impact) in expected.items():
        s = score_ingredient(name)
        assert (s.category, s.score, s.health_impact) == (category, value, impact), name


def test_unmatched_ingredient_is_neutral():
    from core.evaluation.fallback_scoring import score_ingredient
    s = score_ingredient("xanthan gum")
    assert s.score == 5
    assert s.category == "other"
    assert s.health_impact == "neutral"


def test_english_keywords_match_whole_words_only():
    """'oat' must not match inside 'coated'; plurals still match."""
    from core.evaluation.fallback_scoring import score_ingredient
    assert score_ingredient("coated peanuts").category == "other"
    assert score_ingredient("Rolled Oats").category == "grain"
    assert score_ingredient("cane sugars").category == "added_sugar"
    assert score_ingredient("Natural Flavouring").category == "additive"


def test_first_matching_rule_wins():
    """Grain is checked before sugar."""
    from core.evaluation.fallback_scoring import score_ingredient
    assert score_ingredient("whole wheat sugar cookie").category == "grain"


def test_empty_list_is_neutral():
    from core.evaluation.fallback_scoring import score
    res = score([])
    assert res.overall_score == 5
    assert res.ingredient_scores == []
    assert res.benefits == ["Provides basic energy"]


def test_overall_score_rounds_half_up_and_clamps():
    from core.evaluation.fallback_scoring import overall_score
    assert overall_score([5, 6]) == 6
    assert overall_score([3, 4, 4]) == 4
    assert overall_score([10, 10]) == 10
    assert overall_score([1]) == 1


def test_report_recommendations_risks_benefits():
    from core.evaluation.fallback_scoring import score
    res = score(["小麦粉", "白砂糖", "食用香精", "鸡蛋"])
    assert "小麦粉" in res.analysis_report and "鸡蛋" in res.analysis_report
    assert "白砂糖" in res.analysis_report
    assert res.recommendations.startswith("1. ")
    assert "sugar intake" in res.recommendations
    assert "natural ingredients" in res.recommendations
    assert res.risk_factors == ["High sugar intake", "Artificial additives"]
    assert res.benefits == ["Provides basic nutrition and energy", "Provides quality protein"]


def test_scoring_is_deterministic():
    from core.evaluation.fallback_scoring import score
    names = ["小麦粉", "白砂糖", "植物油", "鸡蛋"]
    assert score(names).to_dict() == score(names).to_dict()


def test_accepts_parsed_ingredients():
    from core.evaluation.fallback_scoring import score
    from core.models.analysis import ParsedIngredient
    res = score([ParsedIngredient("鸡蛋", 1), ParsedIngredient("牛奶", 2)])
    assert [s.ingredient for s in res.ingredient_scores] == ["鸡蛋", "牛奶"]
    assert res.overall_score == 8
