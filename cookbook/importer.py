"""JSON-to-relational recipe import.

One `ImportRun` takes one document through

    idle -> normalizing -> resolving-references -> persisting-recipes
        -> reconciling-counts -> completed

and ends in `failed` only if the document itself is malformed. Once recipes
start being written, a bad recipe is rolled back and reported in the result,
and the run moves on to the next one.

The session is supplied by the caller, who also closes it.
"""

import enum
import logging
from datetime import timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud, models
from .normalize import DocumentValidationError, normalize_document, slugify
from .schemas import CategoryIn, ChefIn, ImportResult, RecipeIn

logger = logging.getLogger(__name__)


class RunState(str, enum.Enum):
    IDLE = "idle"
    NORMALIZING = "normalizing"
    RESOLVING_REFERENCES = "resolving-references"
    PERSISTING_RECIPES = "persisting-recipes"
    RECONCILING_COUNTS = "reconciling-counts"
    COMPLETED = "completed"
    FAILED = "failed"


class ReferenceCache:
    """Find-or-create by name, remembered for the length of one run.

    Ids of rows created inside a transaction that has not committed yet are
    kept apart as pending; `commit()` promotes them and `discard()` forgets
    them after a rollback.
    """

    def __init__(self, lookup: Callable[[str], Any], create: Callable[[str], Any]):
        self._lookup = lookup
        self._create = create
        self._ids: Dict[str, int] = {}
        self._pending: Dict[str, int] = {}
        self.created = 0
        self._pending_created = 0

    def __contains__(self, name):
        return name in self._ids or name in self._pending

    def resolve(self, name: str) -> int:
        if name in self._ids:
            return self._ids[name]
        if name in self._pending:
            return self._pending[name]
        row = self._lookup(name)
        if row is None:
            row, created = self._create(name)
            if created:
                self._pending_created += 1
        self._pending[name] = row.id
        return row.id

    def commit(self):
        self._ids.update(self._pending)
        self.created += self._pending_created
        self._pending.clear()
        self._pending_created = 0

    def discard(self):
        self._pending.clear()
        self._pending_created = 0


def _describe_validation(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def _describe_db_error(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def _label(raw: Any) -> str:
    if isinstance(raw, dict):
        return str(raw.get("title") or raw.get("id") or "<untitled>")
    return "<invalid>"


class ImportRun:
    """Import one recipe document into the store behind `db`."""

    def __init__(
        self,
        db: Session,
        admin_email: str = "admin@changcookbook.com",
        admin_name: str = "Chang Cookbook Admin",
        author_id: Optional[int] = None,
    ):
        self.db = db
        self.admin_email = admin_email
        self.admin_name = admin_name
        self.author_id = author_id
        self.state = RunState.IDLE
        self.result = ImportResult()
        self.chefs = ReferenceCache(self._find_chef, self._create_chef)
        self.tags = ReferenceCache(self._find_tag, self._create_tag)
        self._chef_avatars: Dict[str, Optional[str]] = {}

    def _enter(self, state: RunState):
        logger.debug("Import run: %s -> %s", self.state.value, state.value)
        self.state = state

    def _error(self, message: str):
        logger.warning("Import error: %s", message)
        self.result.errors.append(message)

    # -- main flow ---------------------------------------------------------

    def run(self, document: Any) -> ImportResult:
        if self.state is not RunState.IDLE:
            raise RuntimeError("an ImportRun can only be run once")

        self._enter(RunState.NORMALIZING)
        try:
            doc = normalize_document(document)
        except DocumentValidationError:
            self._enter(RunState.FAILED)
            raise
        logger.info(
            "Importing %d recipe(s) and %d category record(s)",
            len(doc.recipes),
            len(doc.categories),
        )

        self._enter(RunState.RESOLVING_REFERENCES)
        if self.author_id is None:
            admin = crud.get_or_create_admin(
                self.db, self.admin_email, self.admin_name
            )
            self.author_id = admin.id
        for raw in doc.categories:
            self._upsert_category(raw)
        for raw in doc.recipes:
            self._resolve_chef(raw)

        self._enter(RunState.PERSISTING_RECIPES)
        for raw in doc.recipes:
            self._persist_recipe(raw)

        self._enter(RunState.RECONCILING_COUNTS)
        try:
            crud.reconcile_category_counts(self.db)
        except SQLAlchemyError as exc:
            self.db.rollback()
            self._error(f"Category counts: {_describe_db_error(exc)}")

        self._enter(RunState.COMPLETED)
        r = self.result
        logger.info(
            "Import completed: %d created, %d skipped, %d categories, "
            "%d chefs, %d errors",
            r.recipes_created,
            r.recipes_skipped,
            r.categories_upserted,
            r.chefs_created,
            len(r.errors),
        )
        return r

    # -- references --------------------------------------------------------

    def _upsert_category(self, raw: Any):
        try:
            data = CategoryIn.model_validate(raw)
        except ValidationError as exc:
            label = raw.get("id") if isinstance(raw, dict) else None
            self._error(f"Category {label}: {_describe_validation(exc)}")
            return
        try:
            crud.upsert_category(self.db, data.model_dump())
        except SQLAlchemyError as exc:
            self.db.rollback()
            self._error(f"Category {data.id}: {_describe_db_error(exc)}")
            return
        self.result.categories_upserted += 1

    def _resolve_chef(self, raw: Any):
        if not isinstance(raw, dict) or not isinstance(raw.get("chef"), dict):
            return
        try:
            chef = ChefIn.model_validate(raw["chef"])
        except ValidationError:
            # reported when the recipe itself is validated
            return
        name = (chef.name or "").strip()
        if not name or name in self.chefs:
            return
        self._chef_avatars[name] = chef.avatar
        try:
            self.chefs.resolve(name)
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.chefs.discard()
            self._error(f"Chef {name}: {_describe_db_error(exc)}")
            return
        self.chefs.commit()
        self.result.chefs_created = self.chefs.created

    def _find_chef(self, name: str):
        return crud.get_chef_by_name(self.db, name)

    def _create_chef(self, name: str):
        # names are not unique in the store, so two concurrent runs may each
        # create a chef; dedup holds within one run and against committed rows
        chef = models.Chef(name=name, avatar=self._chef_avatars.get(name) or None)
        self.db.add(chef)
        self.db.commit()
        logger.info("Created chef %s", name)
        return chef, True

    def _find_tag(self, name: str):
        return crud.get_tag_by_name(self.db, name)

    def _create_tag(self, name: str):
        tag = models.Tag(name=name)
        self.db.add(tag)
        self.db.flush()
        return tag, True

    # -- recipes -----------------------------------------------------------

    def _persist_recipe(self, raw: Any):
        label = _label(raw)
        try:
            data = RecipeIn.model_validate(raw)
        except ValidationError as exc:
            self._error(f"Recipe {label}: {_describe_validation(exc)}")
            return

        slug = slugify(data.slug or data.title)
        if not slug:
            self._error(f"Recipe {data.title}: cannot derive a slug from the title")
            return
        recipe_id = data.id or slug

        if crud.recipe_exists(self.db, recipe_id):
            logger.info("Skipping existing recipe: %s", data.title)
            self.result.recipes_skipped += 1
            return

        name = data.chef_name
        if name is None or name not in self.chefs:
            self._error(f"Recipe {data.title}: Chef not found")
            return
        chef_id = self.chefs.resolve(name)

        if not crud.category_exists(self.db, data.category):
            self._error(f"Recipe {data.title}: Category {data.category} not found")
            return
        owner = crud.slug_owner(self.db, slug)
        if owner is not None:
            self._error(
                f"Recipe {data.title}: slug '{slug}' is already used by "
                f"recipe {owner}"
            )
            return

        try:
            recipe = self._build_recipe(data, recipe_id, slug, chef_id)
            self.db.add(recipe)
            self.db.flush()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            self.tags.discard()
            self._error(f"Recipe {data.title}: {_describe_db_error(exc)}")
            return
        self.tags.commit()
        self.result.recipes_created += 1
        logger.info("Imported recipe: %s", data.title)

    def _build_recipe(
        self, data: RecipeIn, recipe_id: str, slug: str, chef_id: int
    ) -> models.Recipe:
        recipe = models.Recipe(
            id=recipe_id,
            title=data.title,
            slug=slug,
            description=data.description,
            category_id=data.category,
            difficulty=data.difficulty,
            prep_time=data.prep_time,
            cook_time=data.cook_time,
            total_time=data.resolved_total_time,
            servings=data.servings,
            rating=data.rating,
            review_count=data.review_count,
            image=data.image or None,
            image_credit=data.image_credit,
            unsplash_id=data.unsplash_id,
            featured=data.featured,
            hero_featured=data.hero_featured,
            equipment=data.equipment or None,
            notes=data.notes,
            chef_id=chef_id,
            author_id=self.author_id,
        )
        if data.created_at is not None:
            created_at = data.created_at
            if created_at.tzinfo is not None:
                created_at = created_at.astimezone(timezone.utc)
            recipe.created_at = created_at.replace(tzinfo=None)
        recipe.ingredients = [
            models.Ingredient(item=ing.item, amount=ing.amount, order=i)
            for i, ing in enumerate(data.ingredients)
        ]
        recipe.instructions = [
            models.Instruction(step=step, order=i)
            for i, step in enumerate(data.instructions)
        ]
        if data.nutrition is not None:
            n = data.nutrition
            recipe.nutrition = models.Nutrition(
                calories=n.calories, protein=n.protein, carbs=n.carbs, fat=n.fat
            )
        seen: List[str] = []
        for name in data.tags:
            name = name.strip()
            if name and name not in seen:
                seen.append(name)
        recipe.tags = [
            models.RecipeTag(tag_id=self.tags.resolve(name)) for name in seen
        ]
        return recipe


def import_document(
    db: Session,
    document: Any,
    admin_email: str = "admin@changcookbook.com",
    admin_name: str = "Chang Cookbook Admin",
    author_id: Optional[int] = None,
) -> ImportResult:
    """Run one import over `document` and return its result.

    Raises DocumentValidationError when the document is malformed; nothing
    has been written in that case.
    """
    run = ImportRun(
        db, admin_email=admin_email, admin_name=admin_name, author_id=author_id
    )
    return run.run(document)
