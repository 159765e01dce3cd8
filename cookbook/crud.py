import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from . import models

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"id": "appetizers", "name": "Appetizers",
     "description": "Start your meal with delicious appetizers",
     "emoji": "🥗"},
    {"id": "main-course", "name": "Main Course",
     "description": "Hearty main dishes for every occasion",
     "emoji": "🍽️"},
    {"id": "side-dishes", "name": "Side Dishes",
     "description": "Perfect accompaniments to your main course",
     "emoji": "🥔"},
    {"id": "desserts", "name": "Desserts",
     "description": "Sweet treats to end your meal",
     "emoji": "🍰"},
    {"id": "beverages", "name": "Beverages",
     "description": "Refreshing drinks and cocktails",
     "emoji": "🥤"},
    {"id": "snacks", "name": "Snacks",
     "description": "Quick bites and snacks",
     "emoji": "🍿"},
    {"id": "breakfast", "name": "Breakfast",
     "description": "Start your day with a great breakfast",
     "emoji": "🍳"},
    {"id": "quick-meals", "name": "Quick Meals",
     "description": "Fast and easy meals for busy days",
     "emoji": "⚡"},
]

SORT_COLUMNS = {
    "newest": models.Recipe.created_at.desc(),
    "oldest": models.Recipe.created_at.asc(),
    "rating": models.Recipe.rating.desc(),
    "prepTime": models.Recipe.prep_time.asc(),
    "title": models.Recipe.title.asc(),
}


def _with_children(query):
    return query.options(
        selectinload(models.Recipe.chef),
        selectinload(models.Recipe.ingredients),
        selectinload(models.Recipe.instructions),
        selectinload(models.Recipe.nutrition),
        selectinload(models.Recipe.tags).selectinload(models.RecipeTag.tag),
    )


def get_recipe(db: Session, recipe_id: str):
    return (
        _with_children(db.query(models.Recipe))
        .filter(models.Recipe.id == recipe_id)
        .first()
    )


def get_recipe_by_slug(db: Session, slug: str):
    return (
        _with_children(db.query(models.Recipe))
        .filter(models.Recipe.slug == slug)
        .first()
    )


def recipe_exists(db: Session, recipe_id: str) -> bool:
    return (
        db.query(models.Recipe.id).filter(models.Recipe.id == recipe_id).first()
        is not None
    )


def slug_owner(db: Session, slug: str):
    """Return the id of the recipe using `slug`, or None."""
    row = db.query(models.Recipe.id).filter(models.Recipe.slug == slug).first()
    return row[0] if row else None


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_recipes(
    db: Session,
    q: str = None,
    category: str = None,
    difficulty: str = None,
    featured: bool = None,
    sort: str = "newest",
    skip: int = 0,
    limit: int = 100,
):
    """Return (recipes, total) for a filtered, sorted page of recipes.

    `q` matches title, description or any ingredient item, ignoring case.
    """
    query = db.query(models.Recipe)
    if q:
        like = "%" + _escape_like(q.lower()) + "%"
        has_item = models.Recipe.ingredients.any(
            func.lower(models.Ingredient.item).like(like, escape="\\")
        )
        query = query.filter(
            or_(
                func.lower(models.Recipe.title).like(like, escape="\\"),
                func.lower(models.Recipe.description).like(like, escape="\\"),
                has_item,
            )
        )
    if category:
        query = query.filter(models.Recipe.category_id == category)
    if difficulty:
        query = query.filter(models.Recipe.difficulty == difficulty)
    if featured is not None:
        query = query.filter(models.Recipe.featured == featured)

    total = query.count()
    order = SORT_COLUMNS.get(sort, SORT_COLUMNS["newest"])
    items = (
        _with_children(query)
        .order_by(order, models.Recipe.id)
        .offset(skip)
        .limit(limit)
        .all()
    )
    return items, total


def get_categories(db: Session):
    return db.query(models.Category).order_by(models.Category.name).all()


def get_hero_recipe(db: Session):
    return (
        _with_children(db.query(models.Recipe))
        .filter(models.Recipe.hero_featured.is_(True))
        .order_by(models.Recipe.updated_at.desc())
        .first()
    )


def set_hero_recipe(db: Session, recipe_id: str):
    """Make `recipe_id` the only hero recipe. Returns None if it is unknown."""
    db_recipe = get_recipe(db, recipe_id)
    if not db_recipe:
        return None
    db.query(models.Recipe).filter(
        models.Recipe.id != recipe_id, models.Recipe.hero_featured.is_(True)
    ).update({models.Recipe.hero_featured: False}, synchronize_session=False)
    db_recipe.hero_featured = True
    db.commit()
    db.refresh(db_recipe)
    return db_recipe


def delete_recipe(db: Session, recipe_id: str):
    db_recipe = (
        db.query(models.Recipe).filter(models.Recipe.id == recipe_id).first()
    )
    if not db_recipe:
        return False
    db.delete(db_recipe)
    db.commit()
    reconcile_category_counts(db)
    return True


def upsert_category(db: Session, data: dict):
    """Insert or update a category by id. `count` is never taken from input."""
    db_category = db.get(models.Category, data["id"])
    if db_category is None:
        db_category = models.Category(id=data["id"], count=0)
        db.add(db_category)
    db_category.name = data["name"]
    db_category.description = data.get("description") or ""
    db_category.emoji = data.get("emoji") or ""
    db.commit()
    return db_category


def category_exists(db: Session, category_id: str) -> bool:
    return db.get(models.Category, category_id) is not None


def reconcile_category_counts(db: Session):
    """Recompute every category's count from the recipes referencing it.

    Categories nobody references are set to 0. Returns {category_id: count}.
    """
    rows = (
        db.query(models.Recipe.category_id, func.count(models.Recipe.id))
        .group_by(models.Recipe.category_id)
        .all()
    )
    counts = {category_id: n for category_id, n in rows}
    result = {}
    for category in db.query(models.Category).all():
        category.count = counts.get(category.id, 0)
        result[category.id] = category.count
    db.commit()
    return result


def seed_categories(db: Session):
    for data in DEFAULT_CATEGORIES:
        upsert_category(db, data)
        logger.info("Seeded category %s", data["id"])
    return reconcile_category_counts(db)


def get_or_create_admin(db: Session, email: str, name: str):
    user = db.query(models.User).filter(models.User.email == email).first()
    if user:
        return user
    user = models.User(email=email, name=name, role="admin")
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created admin user %s", email)
    return user


def get_chef_by_name(db: Session, name: str):
    return (
        db.query(models.Chef)
        .filter(models.Chef.name == name)
        .order_by(models.Chef.id)
        .first()
    )


def get_tag_by_name(db: Session, name: str):
    return db.query(models.Tag).filter(models.Tag.name == name).first()
