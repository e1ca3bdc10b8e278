# backend/modules/sales_inventory/models/catalog_models.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    Float,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from core.database import Base
from core.mixins import TimestampMixin


class Recipe(Base, TimestampMixin):
    """Store recipe: the ordered bill of materials for one catalog product"""

    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("recipe_templates.id"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    ingredients = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.position",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Recipe(id={self.id}, name='{self.name}', store_id={self.store_id})>"


class RecipeIngredient(Base, TimestampMixin):
    """Ingredient line of a recipe; the inventory mapping may be unset"""

    __tablename__ = "recipe_ingredients"

    id = Column(Integer, primary_key=True, index=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id"), nullable=False, index=True)
    ingredient_name = Column(String(200), nullable=False)
    quantity_per_unit = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False, default="pieces")
    inventory_item_id = Column(
        Integer, ForeignKey("inventory_items.id"), nullable=True
    )
    position = Column(Integer, nullable=False, default=0)

    # Relationships
    recipe = relationship("Recipe", back_populates="ingredients")

    def __repr__(self):
        return (
            f"<RecipeIngredient(recipe_id={self.recipe_id}, "
            f"ingredient='{self.ingredient_name}', quantity={self.quantity_per_unit})>"
        )


class CatalogEntry(Base, TimestampMixin):
    """Product as sold in one store; recipe and combo flags drive resolution"""

    __tablename__ = "product_catalog"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, nullable=False, index=True)
    product_name = Column(String(200), nullable=False, index=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id"), nullable=True)
    is_combo = Column(Boolean, nullable=False, default=False)
    is_available = Column(Boolean, nullable=False, default=True)

    # Relationships
    recipe = relationship("Recipe", lazy="selectin")

    def __repr__(self):
        return (
            f"<CatalogEntry(id={self.id}, product_name='{self.product_name}', "
            f"store_id={self.store_id})>"
        )


class ComboComponent(Base, TimestampMixin):
    """One constituent product of a combo catalog entry"""

    __tablename__ = "combo_components"

    id = Column(Integer, primary_key=True, index=True)
    combo_product_id = Column(
        Integer, ForeignKey("product_catalog.id"), nullable=False, index=True
    )
    component_product_id = Column(
        Integer, ForeignKey("product_catalog.id"), nullable=False
    )
    quantity = Column(Integer, nullable=False, default=1)
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("combo_product_id", "component_product_id", name="uq_combo_component"),
    )


class RecipeTemplate(Base, TimestampMixin):
    """Store-independent recipe template, e.g. 'Mini Croffle Base'"""

    __tablename__ = "recipe_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    ingredients = relationship(
        "RecipeTemplateIngredient",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="RecipeTemplateIngredient.position",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<RecipeTemplate(id={self.id}, name='{self.name}')>"


class RecipeTemplateIngredient(Base, TimestampMixin):
    """Ingredient line of a template; mapped to inventory by name per store"""

    __tablename__ = "recipe_template_ingredients"

    id = Column(Integer, primary_key=True, index=True)
    template_id = Column(
        Integer, ForeignKey("recipe_templates.id"), nullable=False, index=True
    )
    ingredient_name = Column(String(200), nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(String(20), nullable=False, default="pieces")
    position = Column(Integer, nullable=False, default=0)

    # Relationships
    template = relationship("RecipeTemplate", back_populates="ingredients")
