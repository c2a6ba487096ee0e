"""
Extract a structured ingredient list from raw label text (OCR output).

- Locate the ingredient section by keyword (配料, 成分, ingredients, contains ...).
- Split the text after the first keyword on list separators (, ， 、 ; ； ·).
- Clean each token: parenthetical content, leading numbering, colons, whitespace.
- Keep tokens within a length window and number them 1..N in scan order.
Pure function: no I/O, no state.
"""
import re
import logging
from typing import List

from core.models.analysis import ExtractedIngredients, ParsedIngredient

logger = logging.getLogger(__name__)

# Longest first so "配料表" is stripped before "配料".
INGREDIENT_KEYWORDS = sorted(
    [
        "配料表", "成分表", "原料表",
        "配料", "成分", "原料", "配方", "组成",
        "ingredients", "ingredient", "composition", "contains",
    ],
    key=len,
    reverse=True,
)

MIN_TOKEN_LENGTH = 1
MAX_TOKEN_LENGTH = 30

_KEYWORD_RE = re.compile("|".join(re.escape(k) for k in INGREDIENT_KEYWORDS), re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"[,，、;；·・]")
# Innermost parentheses first; applied repeatedly to flatten nesting.
_PAREN_RE = re.compile(r"[（(\[【][^（()）\[\]【】]*[）)\]】]")
_LEADING_NUMBER_RE = re.compile(r"^\s*\d+\s*[.、)）]?\s*")
_COLON_RE = re.compile(r"[:：]")
_TRAILING_PUNCT_RE = re.compile(r"[.。!！]+$")


def _strip_parentheses(token: str) -> str:
    prev = None
    while prev != token:
        prev = token
        token = _PAREN_RE.sub("", token)
    return token


def clean_token(token: str) -> str:
    """Normalize one candidate ingredient token."""
    t = _strip_parentheses(token)
    t = _COLON_RE.sub("", t)
    t = _LEADING_NUMBER_RE.sub("", t)
    t = _TRAILING_PUNCT_RE.sub("", t.strip())
    return " ".join(t.split())


def extraction_confidence(count: int) -> float:
    """Capped heuristic: 0.3 + 0.1 per ingredient, at most 0.9; 0 when nothing found."""
    if count <= 0:
        return 0.0
    return round(min(0.9, 0.3 + 0.1 * count), 4)


def split_ingredient_section(raw_text: str) -> List[str]:
    """Return raw separator-delimited tokens after the first keyword, or [] when no keyword."""
    if not raw_text:
        return []
    match = _KEYWORD_RE.search(raw_text)
    if match is None:
        return []
    section = raw_text[match.start():]
    section = _KEYWORD_RE.sub(" ", section)
    section = section.replace("\r", " ").replace("\n", " ")
    return _SEPARATOR_RE.split(section)


def extract_ingredients(raw_text: str) -> ExtractedIngredients:
    """
    Parse raw label text into ExtractedIngredients.

    Empty text or text without an ingredient keyword yields
    has_ingredients=False, no ingredients and confidence 0.
    """
    if not raw_text or not isinstance(raw_text, str):
        return ExtractedIngredients()

    ingredients: List[ParsedIngredient] = []
    for token in split_ingredient_section(raw_text):
        name = clean_token(token)
        if not (MIN_TOKEN_LENGTH <= len(name) <= MAX_TOKEN_LENGTH):
            continue
        ingredients.append(ParsedIngredient(name=name, position=len(ingredients) + 1))

    logger.debug("INGREDIENT_PARSE chars=%d ingredients=%d", len(raw_text), len(ingredients))
    return ExtractedIngredients(
        ingredients=ingredients,
        has_ingredients=bool(ingredients),
        extraction_confidence=extraction_confidence(len(ingredients)),
    )
