from datetime import datetime

import pytest
from sqlalchemy import event

from cookbook import crud, models
from cookbook.importer import ImportRun, ReferenceCache, RunState, import_document
from cookbook.normalize import DocumentValidationError

from factories import make_document, make_recipe


def test_mango_scenario(db, mango_document):
    result = import_document(db, mango_document)

    assert result.recipes_created == 1
    assert result.categories_upserted == 1
    assert result.chefs_created == 1
    assert result.recipes_skipped == 0
    assert result.errors == []

    desserts = db.get(models.Category, "desserts")
    assert desserts.count == 1
    recipe = crud.get_recipe(db, "r1")
    assert recipe.slug == "mango-sticky-rice"
    assert recipe.chef.name == "Nok"
    assert sorted(recipe.tag_names) == ["dessert", "thai"]
    assert [(i.item, i.amount, i.order) for i in recipe.ingredients] == [
        ("rice", "1 cup", 0)
    ]
    assert [s.step for s in recipe.instructions] == ["Cook rice"]


def test_reimport_is_skipped(db, mango_document):
    import_document(db, mango_document)
    result = import_document(db, mango_document)

    assert result.recipes_created == 0
    assert result.recipes_skipped == 1
    assert result.chefs_created == 0
    assert result.errors == []
    assert db.query(models.Recipe).count() == 1
    assert db.query(models.Chef).count() == 1
    assert db.query(models.Tag).count() == 2
    assert db.query(models.RecipeTag).count() == 2
    assert db.get(models.Category, "desserts").count == 1


def test_idempotent_batch(db):
    doc = make_document([make_recipe(n, chef=f"Chef {n % 3}") for n in range(6)])

    first = import_document(db, doc)
    second = import_document(db, doc)

    assert first.recipes_created == 6
    assert second.recipes_created == 0
    assert second.recipes_skipped == 6
    assert db.query(models.Recipe).count() == 6
    assert db.query(models.Ingredient).count() == 12
    assert db.query(models.Chef).count() == 3


def test_chef_is_created_once_per_name(db):
    doc = make_document([make_recipe(n, chef="Ana") for n in range(10)])

    result = import_document(db, doc)

    assert result.recipes_created == 10
    assert result.chefs_created == 1
    assert db.query(models.Chef).count() == 1
    chef = db.query(models.Chef).one()
    assert {r.chef_id for r in db.query(models.Recipe)} == {chef.id}


def test_existing_chef_is_reused(db):
    db.add(models.Chef(name="Ana", avatar="https://img.example/ana.png"))
    db.commit()

    result = import_document(db, make_document([make_recipe(1, chef="Ana")]))

    assert result.chefs_created == 0
    assert db.query(models.Chef).count() == 1


def test_second_run_reuses_chef_from_first(db):
    import_document(db, make_document([make_recipe(1, chef="Ana")]))

    result = import_document(db, make_document([make_recipe(2, chef="Ana")]))

    assert result.recipes_created == 1
    assert result.chefs_created == 0
    assert db.query(models.Chef).count() == 1


def test_chef_avatar_is_stored(db):
    recipe = make_recipe(1)
    recipe["chef"] = {"name": "Nok", "avatar": "https://img.example/nok.png"}

    import_document(db, make_document([recipe]))

    chef = db.query(models.Chef).one()
    assert chef.avatar == "https://img.example/nok.png"


def test_shared_tag_is_created_once(db):
    doc = make_document(
        [
            make_recipe(1, tags=["quick", "vegan"]),
            make_recipe(2, tags=["quick"]),
        ]
    )

    result = import_document(db, doc)

    assert result.recipes_created == 2
    assert db.query(models.Tag).filter(models.Tag.name == "quick").count() == 1
    quick = db.query(models.Tag).filter(models.Tag.name == "quick").one()
    links = db.query(models.RecipeTag).filter(models.RecipeTag.tag_id == quick.id)
    assert links.count() == 2


def test_repeated_tag_in_one_recipe(db):
    import_document(db, make_document([make_recipe(1, tags=["quick", "quick "])]))

    assert db.query(models.Tag).count() == 1
    assert db.query(models.RecipeTag).count() == 1


def test_category_counts_follow_the_store(db):
    categories = ("main-course", "desserts", "snacks")
    import_document(
        db,
        make_document(
            [make_recipe(1), make_recipe(2, category="desserts")], categories
        ),
    )

    doc = make_document(
        [
            make_recipe(1),  # skipped
            make_recipe(3, chef=""),  # fails
            make_recipe(4, category="desserts"),
            make_recipe(5, category="nowhere"),  # fails
        ],
        categories,
    )
    result = import_document(db, doc)

    assert result.recipes_created == 1
    assert result.recipes_skipped == 1
    assert len(result.errors) == 2
    for category in db.query(models.Category):
        expected = (
            db.query(models.Recipe)
            .filter(models.Recipe.category_id == category.id)
            .count()
        )
        assert category.count == expected
    assert db.get(models.Category, "main-course").count == 1
    assert db.get(models.Category, "desserts").count == 2
    assert db.get(models.Category, "snacks").count == 0


def test_input_count_is_not_authoritative(db):
    doc = make_document([], ("desserts",))
    assert doc["categories"][0]["count"] == 99

    import_document(db, doc)

    assert db.get(models.Category, "desserts").count == 0


def test_counts_repaired_after_out_of_band_delete(db):
    import_document(db, make_document([make_recipe(1), make_recipe(2)]))
    db.delete(db.get(models.Recipe, "recipe-1"))
    db.commit()

    import_document(db, make_document([]))

    assert db.get(models.Category, "main-course").count == 1


def test_failed_recipe_is_rolled_back(db):
    bad = make_recipe(1, tags=["brand-new-tag"])
    bad["ingredients"] = [
        {"item": f"ingredient {i}", "amount": "1"} for i in range(6)
    ]
    bad["nutrition"] = {"calories": "200", "protein": "5g"}
    doc = make_document([bad, make_recipe(2, tags=["brand-new-tag"])])

    def break_fifth_ingredient(mapper, connection, target):
        if target.order == 4:
            target.item = None

    event.listen(models.Ingredient, "before_insert", break_fifth_ingredient)
    try:
        result = import_document(db, doc)
    finally:
        event.remove(models.Ingredient, "before_insert", break_fifth_ingredient)

    assert result.recipes_created == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Recipe Recipe number 1: ")

    assert db.get(models.Recipe, "recipe-1") is None
    leftovers = models.Ingredient.recipe_id == "recipe-1"
    assert db.query(models.Ingredient).filter(leftovers).count() == 0
    assert (
        db.query(models.Instruction)
        .filter(models.Instruction.recipe_id == "recipe-1")
        .count()
        == 0
    )
    assert db.query(models.Nutrition).count() == 0

    # the tag created by the rolled-back recipe was created again for the next
    second = crud.get_recipe(db, "recipe-2")
    assert second.tag_names == ["brand-new-tag"]
    assert db.query(models.Tag).count() == 1
    assert db.get(models.Category, "main-course").count == 1


def test_missing_chef_name_is_an_error(db):
    no_name = make_recipe(1)
    no_name["chef"] = {"avatar": "https://img.example/x.png"}
    no_chef = make_recipe(2)
    del no_chef["chef"]

    result = import_document(db, make_document([no_name, no_chef]))

    assert result.recipes_created == 0
    assert result.errors == [
        "Recipe Recipe number 1: Chef not found",
        "Recipe Recipe number 2: Chef not found",
    ]
    assert db.query(models.Recipe).count() == 0
    assert db.query(models.Chef).count() == 0


def test_unknown_category_is_an_error(db):
    result = import_document(db, make_document([make_recipe(1, category="soups")]))

    assert result.recipes_created == 0
    assert result.errors == ["Recipe Recipe number 1: Category soups not found"]


def test_slug_collision_is_reported(db):
    first = make_recipe(1, title="Pad Thai")
    second = make_recipe(2, title="Pad Thai!")

    result = import_document(db, make_document([first, second]))

    assert result.recipes_created == 1
    assert result.errors == [
        "Recipe Pad Thai!: slug 'pad-thai' is already used by recipe recipe-1"
    ]


def test_explicit_slug_is_kept(db):
    import_document(db, make_document([make_recipe(1, slug="house-special")]))

    assert crud.get_recipe_by_slug(db, "house-special").id == "recipe-1"


def test_explicit_slug_is_slugified(db):
    import_document(db, make_document([make_recipe(1, slug="Not A Slug!")]))

    assert crud.get_recipe(db, "recipe-1").slug == "not-a-slug"


def test_recipe_without_id_uses_its_slug(db):
    recipe = make_recipe(1, title="Green Curry")
    del recipe["id"]
    doc = make_document([recipe])

    first = import_document(db, doc)
    second = import_document(db, doc)

    assert first.recipes_created == 1
    assert crud.get_recipe(db, "green-curry").title == "Green Curry"
    assert second.recipes_skipped == 1


def test_invalid_record_is_reported_and_batch_continues(db):
    bad = make_recipe(1, difficulty="extreme")
    untitled = make_recipe(2, title="   ")
    doc = make_document([bad, untitled, make_recipe(3)])

    result = import_document(db, doc)

    assert result.recipes_created == 1
    assert len(result.errors) == 2
    assert result.errors[0].startswith("Recipe Recipe number 1: difficulty")
    assert "title" in result.errors[1]


def test_invalid_category_is_reported(db):
    doc = make_document([make_recipe(1)])
    doc["categories"].append({"id": "", "name": "Nameless"})

    result = import_document(db, doc)

    assert result.categories_upserted == 1
    assert result.recipes_created == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Category : id")


def test_category_upsert_updates_fields(db):
    import_document(db, make_document([], ("desserts",)))
    doc = {
        "recipes": [],
        "categories": [
            {"id": "desserts", "name": "Sweets", "description": "New", "emoji": "x"}
        ],
    }

    import_document(db, doc)

    desserts = db.get(models.Category, "desserts")
    assert (desserts.name, desserts.description, desserts.emoji) == (
        "Sweets",
        "New",
        "x",
    )


def test_recipe_fields_and_defaults(db):
    recipe = make_recipe(
        1,
        description="Salty water",
        rating=4.5,
        reviewCount=12,
        image="https://img.example/1.jpg",
        imageCredit="Photo by Someone",
        featured=True,
        heroFeatured=True,
        equipment=["pot"],
        notes="Serve hot",
        createdAt="2024-01-15",
        nutrition={"calories": 120, "protein": "1g", "carbs": "0g", "fat": "0g"},
    )

    import_document(db, make_document([recipe]))

    stored = crud.get_recipe(db, "recipe-1")
    assert stored.total_time == 30
    assert stored.difficulty == "easy"
    assert stored.rating == 4.5
    assert stored.review_count == 12
    assert stored.featured is True
    assert stored.hero_featured is True
    assert stored.equipment == ["pot"]
    assert stored.created_at == datetime(2024, 1, 15)
    assert stored.nutrition.calories == "120"
    assert stored.nutrition.protein == "1g"


def test_created_at_offset_is_converted_to_utc(db):
    recipe = make_recipe(1, createdAt="2024-01-15T10:00:00+07:00")

    import_document(db, make_document([recipe]))

    assert crud.get_recipe(db, "recipe-1").created_at == datetime(2024, 1, 15, 3, 0)


def test_explicit_total_time_wins(db):
    import_document(db, make_document([make_recipe(1, totalTime=45)]))

    assert db.get(models.Recipe, "recipe-1").total_time == 45


def test_single_recipe_document(db):
    raw = {
        "title": "Honey Garlic Chicken",
        "chef": {"name": "Chang"},
        "ingredients": [{"item": "honey", "amount": "3 tbsp"}],
        "instructions": ["Mix", "Bake"],
        "tags": ["dinner"],
    }

    result = import_document(db, raw)

    assert result.recipes_created == 1
    assert result.categories_upserted == 1
    category = db.get(models.Category, "main-course")
    assert category.name == "Main Course"
    assert category.count == 1
    assert crud.get_recipe(db, "honey-garlic-chicken").slug == "honey-garlic-chicken"


def test_recipes_are_owned_by_the_admin(db, mango_document):
    import_document(db, mango_document, admin_email="owner@example.com")

    recipe = db.get(models.Recipe, "r1")
    assert recipe.author.email == "owner@example.com"
    assert recipe.author.role == "admin"


def test_explicit_author(db, mango_document):
    user = models.User(email="chef@example.com", name="Chef", role="chef")
    db.add(user)
    db.commit()

    import_document(db, mango_document, author_id=user.id)

    assert db.get(models.Recipe, "r1").author_id == user.id
    assert db.query(models.User).count() == 1


def test_malformed_document_writes_nothing(db):
    run = ImportRun(db)

    with pytest.raises(DocumentValidationError):
        run.run({"recipes": []})

    assert run.state is RunState.FAILED
    assert db.query(models.User).count() == 0
    assert db.query(models.Category).count() == 0


def test_run_reaches_completed(db, mango_document):
    run = ImportRun(db)
    run.run(mango_document)

    assert run.state is RunState.COMPLETED
    with pytest.raises(RuntimeError):
        run.run(mango_document)


def test_run_passes_through_every_state(db, mango_document):
    seen = []

    class TracedRun(ImportRun):
        def _enter(self, state):
            seen.append(state.value)
            super()._enter(state)

    TracedRun(db).run(mango_document)

    assert seen == [
        "normalizing",
        "resolving-references",
        "persisting-recipes",
        "reconciling-counts",
        "completed",
    ]


def test_reference_cache_serves_repeats_from_memory():
    lookups = []
    created = []

    class Row:
        def __init__(self, id):
            self.id = id

    def lookup(name):
        lookups.append(name)
        return Row(1) if name == "known" else None

    def create(name):
        created.append(name)
        return Row(100 + len(created)), True

    cache = ReferenceCache(lookup, create)
    assert cache.resolve("known") == 1
    assert cache.resolve("fresh") == 101
    cache.commit()
    assert cache.resolve("known") == 1
    assert cache.resolve("fresh") == 101

    assert lookups == ["known", "fresh"]
    assert created == ["fresh"]
    assert cache.created == 1


def test_reference_cache_discard_forgets_pending():
    def create(name):
        return type("Row", (), {"id": 7})(), True

    cache = ReferenceCache(lambda name: None, create)
    cache.resolve("quick")
    assert "quick" in cache
    cache.discard()

    assert "quick" not in cache
    assert cache.created == 0
