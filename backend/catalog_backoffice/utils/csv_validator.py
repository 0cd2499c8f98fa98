"""Validate catalog CSV headers and enforce per-row field constraints."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any


class ValidationError(ValueError):
    """Custom exception for CSV validation errors."""

    pass


REQUIRED_HEADERS = [
    "product_name",
    "manufacturer",
    "brand",
    "variant",
    "category",
    "pack_size",
    "pack_type",
]

TEMPLATE_HEADERS = [
    "product_name",
    "product_description",
    "price",
    "discount",
    "manufacturer",
    "brand",
    "brand_logo",
    "variant",
    "category",
    "category_description",
    "subcategory",
    "subcategory_description",
    "pack_size",
    "pack_type",
    "product_images",
    "product_thumbnail",
]


@dataclass
class ProductRow:
    """One validated spreadsheet row."""

    product_name: str
    manufacturer: str
    brand: str
    variant: str
    category: str
    pack_size: str
    pack_type: str
    product_description: str = ""
    price: Decimal | None = None
    discount: Decimal | None = None
    brand_logo: str = ""
    category_description: str = ""
    subcategory: str = ""
    subcategory_description: str = ""
    product_images: list[str] = field(default_factory=list)
    product_thumbnail: str = ""


def normalize_header(header: str) -> str:
    """``" Pack Size "`` -> ``"pack_size"``."""
    return "_".join((header or "").strip().lower().split())


def validate_headers(headers: list[str] | None) -> None:
    """Ensure CSV contains the required columns before processing."""
    if not headers:
        raise ValidationError(
            f"CSV requires a header row with {','.join(REQUIRED_HEADERS)} columns"
        )
    normalized = [normalize_header(header) for header in headers]
    missing = [field for field in REQUIRED_HEADERS if field not in normalized]
    if missing:
        raise ValidationError(f"Missing required column(s): {', '.join(missing)}")


def normalize_row(row: dict[str, Any]) -> dict[str, str]:
    """Normalize keys and trim values; blanks and missing cells become ``""``."""
    normalized: dict[str, str] = {}
    for key, value in row.items():
        if key is None:
            # csv.DictReader collects surplus cells under a None key
            continue
        normalized[normalize_header(key)] = value.strip() if isinstance(value, str) else ""
    return normalized


def _parse_decimal(raw: str, column: str, errors: list[str]) -> Decimal | None:
    if not raw:
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation:
        errors.append(f"{column} must be a number, got '{raw}'")
        return None
    if not value.is_finite():
        errors.append(f"{column} must be a finite number, got '{raw}'")
        return None
    return value


def parse_product_row(row: dict[str, str]) -> ProductRow:
    """Validate a normalized row before any database access.

    Collects every problem in the row and raises them together.
    """
    errors = [f"{column} is required" for column in REQUIRED_HEADERS if not row.get(column)]

    price = _parse_decimal(row.get("price", ""), "price", errors)
    if price is not None and price < 0:
        errors.append("price must not be negative")
    discount = _parse_decimal(row.get("discount", ""), "discount", errors)
    if discount is not None and not (0 <= discount <= 100):
        errors.append("discount must be between 0 and 100")

    if errors:
        raise ValidationError("; ".join(errors))

    images = [url.strip() for url in row.get("product_images", "").split(",") if url.strip()]
    return ProductRow(
        product_name=row["product_name"],
        manufacturer=row["manufacturer"],
        brand=row["brand"],
        variant=row["variant"],
        category=row["category"],
        pack_size=row["pack_size"],
        pack_type=row["pack_type"],
        product_description=row.get("product_description", ""),
        price=price,
        discount=discount,
        brand_logo=row.get("brand_logo", ""),
        category_description=row.get("category_description", ""),
        subcategory=row.get("subcategory", ""),
        subcategory_description=row.get("subcategory_description", ""),
        product_images=images,
        product_thumbnail=row.get("product_thumbnail", ""),
    )
