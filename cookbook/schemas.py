from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentModel(BaseModel):
    # documents use camelCase keys; python code uses snake_case
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class IngredientIn(DocumentModel):
    item: str = Field(..., min_length=1)
    amount: str = ""

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_text(cls, v):
        if v is None:
            return ""
        return str(v)


class NutritionIn(DocumentModel):
    calories: Optional[str] = None
    protein: Optional[str] = None
    carbs: Optional[str] = None
    fat: Optional[str] = None

    @field_validator("calories", "protein", "carbs", "fat", mode="before")
    @classmethod
    def _magnitude_text(cls, v):
        # magnitudes are free text ("15g"); bare numbers are kept as text
        if v is None or isinstance(v, str):
            return v
        return str(v)


class ChefIn(DocumentModel):
    name: Optional[str] = None
    avatar: Optional[str] = None


class CategoryIn(DocumentModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    emoji: str = ""


class RecipeIn(DocumentModel):
    id: Optional[str] = None
    title: str = Field(..., min_length=1)
    slug: Optional[str] = None
    description: str = ""
    category: str = "main-course"
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    prep_time: int = Field(0, ge=0, alias="prepTime")
    cook_time: int = Field(0, ge=0, alias="cookTime")
    total_time: Optional[int] = Field(None, ge=0, alias="totalTime")
    servings: Optional[int] = Field(None, ge=0)
    rating: float = 0
    review_count: int = Field(0, ge=0, alias="reviewCount")
    image: Optional[str] = None
    image_credit: Optional[str] = Field(None, alias="imageCredit")
    unsplash_id: Optional[str] = Field(None, alias="unsplashId")
    featured: bool = False
    hero_featured: bool = Field(False, alias="heroFeatured")
    equipment: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    chef: Optional[ChefIn] = None
    ingredients: List[IngredientIn] = Field(default_factory=list)
    instructions: List[str] = Field(default_factory=list)
    nutrition: Optional[NutritionIn] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be blank")
        return v

    @field_validator(
        "prep_time", "cook_time", "rating", "review_count", mode="before"
    )
    @classmethod
    def _null_is_zero(cls, v):
        return 0 if v is None else v

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, v):
        return v or "main-course"

    @field_validator("featured", "hero_featured", mode="before")
    @classmethod
    def _null_is_false(cls, v):
        return False if v is None else v

    @field_validator(
        "equipment", "ingredients", "instructions", "tags", mode="before"
    )
    @classmethod
    def _null_is_empty(cls, v):
        return [] if v is None else v

    @field_validator("difficulty", mode="before")
    @classmethod
    def _lower_difficulty(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("created_at", mode="before")
    @classmethod
    def _date_only(cls, v):
        # "2024-01-15" means midnight UTC of that day
        if isinstance(v, str) and len(v) == 10:
            return v + "T00:00:00"
        return v

    @property
    def chef_name(self) -> Optional[str]:
        if self.chef is None or not self.chef.name:
            return None
        return self.chef.name.strip() or None

    @property
    def resolved_total_time(self) -> int:
        if self.total_time:
            return self.total_time
        return self.prep_time + self.cook_time


class ImportResult(BaseModel):
    recipes_created: int = 0
    categories_upserted: int = 0
    chefs_created: int = 0
    recipes_skipped: int = 0
    errors: List[str] = Field(default_factory=list)


class MigrateResults(BaseModel):
    recipes: int
    categories: int
    chefs: int
    skipped: int
    errors: List[str]

    @classmethod
    def from_result(cls, result: ImportResult) -> "MigrateResults":
        return cls(
            recipes=result.recipes_created,
            categories=result.categories_upserted,
            chefs=result.chefs_created,
            skipped=result.recipes_skipped,
            errors=list(result.errors),
        )


class MigrateResponse(BaseModel):
    message: str
    results: MigrateResults


class CategoryOut(BaseModel):
    id: str
    name: str
    description: str
    emoji: str
    count: int

    model_config = ConfigDict(from_attributes=True)


class RecipePage(BaseModel):
    items: List[dict]
    total: int
    page: int
    page_size: int
