from enum import Enum


class DeductionState(str, Enum):
    EXPANDING = "expanding"
    RESOLVING = "resolving"
    VALIDATING = "validating"
    DEDUCTING = "deducting"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorKind(str, Enum):
    NO_RECIPE_FOUND = "no_recipe_found"
    NO_INVENTORY_MAPPING = "no_inventory_mapping"
    INSUFFICIENT_STOCK = "insufficient_stock"
    COMBINATION_EXPANSION_FAILED = "combination_expansion_failed"
    AUDIT_WRITE_FAILED = "audit_write_failed"
    TIMEOUT = "timeout"
    AUTHENTICATION_MISSING = "authentication_missing"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    INTERNAL_ERROR = "internal_error"


class AddonCategory(str, Enum):
    SAUCE_CLASSIC = "sauce_classic"
    SAUCE_PREMIUM = "sauce_premium"
    TOPPING_CLASSIC = "topping_classic"
    TOPPING_PREMIUM = "topping_premium"
    BISCUIT = "biscuit"


class RecipeSource(str, Enum):
    """Which step of the resolution chain produced a recipe"""
    DIRECT_CATALOG = "direct_catalog"
    CATALOG_NAME = "catalog_name"
    BASE_TEMPLATE = "base_template"
    TEMPLATE = "template"
    DIRECT_INVENTORY = "direct_inventory"
    ADDON = "addon"
