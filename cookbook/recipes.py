import json
from pathlib import Path

from sqlalchemy.orm import Session

from . import crud, models


def load_document(path):
    """Load an import document from a JSON file.

    Args:
        path (str or Path): Path to the JSON file.

    Returns:
        The parsed JSON value, unvalidated.

    Raises:
        FileNotFoundError: if the file does not exist.
        json.JSONDecodeError: if the file is not valid JSON.
    """
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def recipe_to_document(recipe: models.Recipe) -> dict:
    """Render a stored recipe in the shape the importer reads."""
    doc = {
        "id": recipe.id,
        "title": recipe.title,
        "slug": recipe.slug,
        "description": recipe.description,
        "category": recipe.category_id,
        "difficulty": recipe.difficulty,
        "prepTime": recipe.prep_time,
        "cookTime": recipe.cook_time,
        "totalTime": recipe.total_time,
        "servings": recipe.servings,
        "rating": recipe.rating,
        "reviewCount": recipe.review_count,
        "image": recipe.image or "",
        "imageCredit": recipe.image_credit,
        "unsplashId": recipe.unsplash_id,
        "featured": recipe.featured,
        "heroFeatured": recipe.hero_featured,
        "createdAt": recipe.created_at.date().isoformat(),
        "chef": {
            "name": recipe.chef.name,
            "avatar": recipe.chef.avatar or "",
        },
        "ingredients": [
            {"item": ing.item, "amount": ing.amount}
            for ing in recipe.ingredients
        ],
        "instructions": [inst.step for inst in recipe.instructions],
        "tags": recipe.tag_names,
        "equipment": recipe.equipment or [],
        "notes": recipe.notes,
    }
    if recipe.nutrition is not None:
        n = recipe.nutrition
        doc["nutrition"] = {
            "calories": n.calories,
            "protein": n.protein,
            "carbs": n.carbs,
            "fat": n.fat,
        }
    return doc


def category_to_document(category: models.Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "emoji": category.emoji,
        "count": category.count,
    }


def export_document(db: Session) -> dict:
    """Dump every recipe and category as one multi-recipe document."""
    recipes, _ = crud.search_recipes(db, sort="oldest", limit=None)
    return {
        "recipes": [recipe_to_document(r) for r in recipes],
        "categories": [
            category_to_document(c) for c in crud.get_categories(db)
        ],
    }
