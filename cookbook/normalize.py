import re
from dataclasses import dataclass, field
from typing import Any, List

# Anything outside word characters, whitespace and hyphens is dropped
_NON_SLUG = re.compile(r"[^a-z0-9_\s-]")
_SEPARATORS = re.compile(r"[\s_-]+")

DEFAULT_CATEGORY = "main-course"
DEFAULT_CATEGORY_EMOJI = "🍳"


class DocumentValidationError(ValueError):
    """The top-level import document has the wrong shape."""


@dataclass
class NormalizedDocument:
    recipes: List[dict] = field(default_factory=list)
    categories: List[dict] = field(default_factory=list)


def slugify(title: str) -> str:
    """Turn a human title into a URL-safe slug.

    >>> slugify("Mom's Famous Pad Thai!")
    'moms-famous-pad-thai'
    """
    s = (title or "").lower().strip()
    s = _NON_SLUG.sub("", s)
    s = _SEPARATORS.sub("-", s)
    return s.strip("-")


def category_name(category_id: str) -> str:
    return " ".join(w.capitalize() for w in category_id.split("-") if w)


def is_single_recipe(raw: Any) -> bool:
    return (
        isinstance(raw, dict)
        and bool(raw.get("title"))
        and raw.get("ingredients") is not None
        and raw.get("instructions") is not None
    )


def normalize_document(raw: Any) -> NormalizedDocument:
    """Return the recipes and categories held by an import document.

    A document carrying `title`, `ingredients` and `instructions` at the top
    level is one recipe; it gets a synthesized category. Anything else must
    carry `recipes` and `categories` lists. Records are left as raw dicts,
    each one is validated on its own while importing.
    """
    if is_single_recipe(raw):
        category_id = raw.get("category")
        if not isinstance(category_id, str) or not category_id:
            category_id = DEFAULT_CATEGORY
        spaced = category_id.replace("-", " ")
        category = {
            "id": category_id,
            "name": category_name(category_id),
            "description": f"Category for {spaced} recipes",
            "emoji": DEFAULT_CATEGORY_EMOJI,
            "count": 1,
        }
        return NormalizedDocument(recipes=[raw], categories=[category])

    if not isinstance(raw, dict):
        raise DocumentValidationError("Import document must be a JSON object")
    if not isinstance(raw.get("recipes"), list):
        raise DocumentValidationError("Missing or invalid recipes array")
    if not isinstance(raw.get("categories"), list):
        raise DocumentValidationError("Missing or invalid categories array")
    return NormalizedDocument(
        recipes=list(raw["recipes"]), categories=list(raw["categories"])
    )
