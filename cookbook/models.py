from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .db import Base

DIFFICULTIES = ("easy", "medium", "hard")


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(320), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default="chef")
    # hashing is owned by the auth service; only the digest is stored
    password_hash = Column(String(200), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    chef = relationship("Chef", back_populates="user", uselist=False)


class Invitation(Base):
    __tablename__ = "invitations"
    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(128), unique=True, index=True, nullable=False)
    email = Column(String(320), nullable=False)
    invited_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Category(Base):
    __tablename__ = "categories"
    id = Column(String(100), primary_key=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    emoji = Column(String(16), nullable=False, default="")
    # derived from recipe membership, see crud.reconcile_category_counts
    count = Column(Integer, nullable=False, default=0)

    recipes = relationship("Recipe", back_populates="category")


class Chef(Base):
    __tablename__ = "chefs"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), index=True, nullable=False)
    avatar = Column(String(1024), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    user = relationship("User", back_populates="chef")
    recipes = relationship("Recipe", back_populates="chef")


class Tag(Base):
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, index=True, nullable=False)


class Recipe(Base):
    __tablename__ = "recipes"
    id = Column(String(100), primary_key=True)
    title = Column(String(300), nullable=False)
    slug = Column(String(300), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=False, default="")
    category_id = Column(
        String(100), ForeignKey("categories.id"), index=True, nullable=False
    )
    difficulty = Column(
        Enum(*DIFFICULTIES, name="difficulty"), nullable=False, default="medium"
    )
    prep_time = Column(Integer, nullable=False, default=0)
    cook_time = Column(Integer, nullable=False, default=0)
    total_time = Column(Integer, nullable=False, default=0)
    servings = Column(Integer, nullable=True)
    rating = Column(Float, nullable=False, default=0)
    review_count = Column(Integer, nullable=False, default=0)
    image = Column(String(1024), nullable=True)
    image_credit = Column(String(300), nullable=True)
    unsplash_id = Column(String(100), nullable=True)
    featured = Column(Boolean, nullable=False, default=False)
    hero_featured = Column(Boolean, nullable=False, default=False)
    equipment = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    chef_id = Column(Integer, ForeignKey("chefs.id"), index=True, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    category = relationship("Category", back_populates="recipes")
    chef = relationship("Chef", back_populates="recipes")
    author = relationship("User")
    ingredients = relationship(
        "Ingredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="Ingredient.order",
    )
    instructions = relationship(
        "Instruction",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="Instruction.order",
    )
    nutrition = relationship(
        "Nutrition",
        back_populates="recipe",
        cascade="all, delete-orphan",
        uselist=False,
    )
    tags = relationship(
        "RecipeTag", back_populates="recipe", cascade="all, delete-orphan"
    )

    @property
    def tag_names(self):
        return [rt.tag.name for rt in self.tags]


class Ingredient(Base):
    __tablename__ = "ingredients"
    id = Column(Integer, primary_key=True, index=True)
    recipe_id = Column(
        String(100),
        ForeignKey("recipes.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    item = Column(String(300), nullable=False)
    amount = Column(String(100), nullable=False, default="")
    order = Column(Integer, nullable=False)

    recipe = relationship("Recipe", back_populates="ingredients")


class Instruction(Base):
    __tablename__ = "instructions"
    id = Column(Integer, primary_key=True, index=True)
    recipe_id = Column(
        String(100),
        ForeignKey("recipes.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    step = Column(Text, nullable=False)
    order = Column(Integer, nullable=False)

    recipe = relationship("Recipe", back_populates="instructions")


class Nutrition(Base):
    __tablename__ = "nutrition"
    id = Column(Integer, primary_key=True, index=True)
    recipe_id = Column(
        String(100),
        ForeignKey("recipes.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    calories = Column(String(50), nullable=True)
    protein = Column(String(50), nullable=True)
    carbs = Column(String(50), nullable=True)
    fat = Column(String(50), nullable=True)

    recipe = relationship("Recipe", back_populates="nutrition")


class RecipeTag(Base):
    __tablename__ = "recipe_tags"
    recipe_id = Column(
        String(100),
        ForeignKey("recipes.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id = Column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )

    recipe = relationship("Recipe", back_populates="tags")
    tag = relationship("Tag")
