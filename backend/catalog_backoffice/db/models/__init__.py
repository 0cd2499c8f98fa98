"""Database models package."""
from catalog_backoffice.db.models.category import Category, Subcategory
from catalog_backoffice.db.models.enums import EntityStatus, ProductStatus
from catalog_backoffice.db.models.import_job import ImportJob
from catalog_backoffice.db.models.manufacturer import Brand, Manufacturer
from catalog_backoffice.db.models.product import Product
from catalog_backoffice.db.models.variant import PackSize, PackType, Variant

__all__ = [
    "Brand",
    "Category",
    "EntityStatus",
    "ImportJob",
    "Manufacturer",
    "PackSize",
    "PackType",
    "Product",
    "ProductStatus",
    "Subcategory",
    "Variant",
]
