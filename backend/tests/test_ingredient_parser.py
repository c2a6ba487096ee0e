"""
Unit tests for ingredient extraction from label text.
Run from backend: python -m pytest tests/test_ingredient_parser.py -v
"""


def test_chinese_label_extracts_all_ingredients_in_order():
    """Sample label: keyword stripped, split on 、, positions 1..N."""
    from core.parsing.ingredient_parser import extract_ingredients
    res = extract_ingredients("配料：小麦粉、白砂糖、植物油、鸡蛋、食用盐、碳酸氢钠、食用香精")
    assert res.has_ingredients is True
    assert res.names() == ["小麦粉", "白砂糖", "植物油", "鸡蛋", "食用盐", "碳酸氢钠", "食用香精"]
    assert [i.position for i in res.ingredients] == list(range(1, 8))
    assert res.extraction_confidence == 0.9


def test_no_keyword_means_no_ingredients():
    """Text without any ingredient marker yields nothing, confidence 0."""
    from core.parsing.ingredient_parser import extract_ingredients
    res = extract_ingredients("Net weight 200g\nBest before 2025-01-01")
    assert res.has_ingredients is False
    assert res.ingredients == []
    assert res.extraction_confidence == 0.0


def test_empty_text():
    from core.parsing.ingredient_parser import extract_ingredients
    for text in ("", None):
        res = extract_ingredients(text)
        assert res.has_ingredients is False
        assert res.extraction_confidence == 0.0


def test_nested_parentheses_removed():
    """Parenthetical content (including nested) is dropped from the token."""
    from core.parsing.ingredient_parser import extract_ingredients
    res = extract_ingredients("配料表：小麦粉（含（麸质））、白砂糖(精制)、植物油【棕榈油】")
    assert res.names() == ["小麦粉", "白砂糖", "植物油"]


def test_english_label_with_numbering_and_case():
    """Keyword match is case-insensitive; leading numbering and trailing period are stripped."""
    from core.parsing.ingredient_parser import extract_ingredients
    res = extract_ingredients("INGREDIENTS: Wheat flour, sugar; 3. salt.")
    assert res.names() == ["Wheat flour", "sugar", "salt"]
    assert res.extraction_confidence == 0.6


def test_text_before_keyword_is_ignored_and_newlines_joined():
    from core.parsing.ingredient_parser import extract_ingredients
    res = extract_ingredients("某某饼干 净含量200g\n配料：小麦粉、\n白砂糖")
    assert res.names() == ["小麦粉", "白砂糖"]


def test_length_window_drops_long_and_empty_tokens():
    """Tokens longer than 30 characters or empty after cleaning are skipped; positions stay contiguous."""
    from core.parsing.ingredient_parser import extract_ingredients, MAX_TOKEN_LENGTH
    long_token = "x" * (MAX_TOKEN_LENGTH + 1)
    res = extract_ingredients(f"配料：小麦粉、{long_token}、（仅括号）、、鸡蛋")
    assert res.names() == ["小麦粉", "鸡蛋"]
    assert [i.position for i in res.ingredients] == [1, 2]


def test_extraction_confidence_is_capped():
    from core.parsing.ingredient_parser import extraction_confidence
    assert extraction_confidence(0) == 0.0
    assert extraction_confidence(1) == 0.4
    assert extraction_confidence(3) == 0.6
    assert extraction_confidence(20) == 0.9
