"""Derived product identity: display name, SKU and EAN-13 / UPC-A barcodes.

Everything here is pure. Bulk ingestion, the rename cascade and product
reactivation all call :func:`derive_product_identity`, so a product's stored
name/SKU/barcode can always be recomputed from its ancestors' current names.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_COUNTRY_CODE = "615"

# Registered manufacturer prefixes, matched against the hyphenated brand name.
KNOWN_MANUFACTURER_CODES: dict[str, str] = {
    "nestle": "1234",
    "coca-cola": "5678",
    "peak": "9012",
    "indomie": "3456",
}

_WHITESPACE = re.compile(r"\s+")
_SKU_INVALID = re.compile(r"[^A-Z0-9]")
_HYPHEN_RUN = re.compile(r"-+")
_SLUG_INVALID = re.compile(r"[^a-z0-9\s-]")
_SLUG_SEPARATORS = re.compile(r"[\s-]+")


@dataclass(frozen=True)
class ProductIdentity:
    name: str
    sku: str
    barcode: str


# ---------------------------------------------------------------------------
# Name helpers
# ---------------------------------------------------------------------------


def clean_name(value: str) -> str:
    """Trim and collapse internal whitespace, keeping the caller's casing."""
    return _WHITESPACE.sub(" ", (value or "").strip())


def normalize_name(value: str) -> str:
    """Case-insensitive comparison key (also the memo-cache key form)."""
    return clean_name(value).lower()


def title_case(value: str) -> str:
    """Upper-case the first letter of each word and lower-case the rest.

    ``"chicken CURRY"`` becomes ``"Chicken Curry"``; ``"70g"`` stays ``"70g"``.
    """
    words = clean_name(value).split(" ")
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def slugify(value: str) -> str:
    """URL-friendly slug used by categories and subcategories."""
    slug = _SLUG_INVALID.sub("", (value or "").lower().strip())
    slug = _SLUG_SEPARATORS.sub("-", slug)
    return slug.strip("-")


def sku_part(value: str) -> str:
    """Upper-case a name and reduce every non-alphanumeric run to one hyphen."""
    part = _SKU_INVALID.sub("-", (value or "").strip().upper())
    return _HYPHEN_RUN.sub("-", part).strip("-")


# ---------------------------------------------------------------------------
# Name / SKU derivation
# ---------------------------------------------------------------------------


def product_name(brand: str, variant: str, pack_size: str, pack_type: str) -> str:
    return f"{brand} {variant} {pack_size} ({pack_type})"


def product_sku(brand: str, variant: str, pack_size: str, pack_type: str) -> str:
    return "-".join(sku_part(part) for part in (brand, variant, pack_size, pack_type))


def derive_product_identity(
    brand: str,
    variant: str,
    pack_size: str,
    pack_type: str,
    *,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> ProductIdentity:
    """Compute the full derived identity of a product from its ancestor names."""
    return ProductIdentity(
        name=product_name(brand, variant, pack_size, pack_type),
        sku=product_sku(brand, variant, pack_size, pack_type),
        barcode=generate_ean13(
            brand, variant, pack_size, pack_type, country_code=country_code
        ),
    )


# ---------------------------------------------------------------------------
# Barcodes
# ---------------------------------------------------------------------------


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _rolling_hash(text: str) -> int:
    """31-multiplier string hash over UTF-16 code units, wrapped to signed 32 bits."""
    encoded = text.encode("utf-16-le")
    result = 0
    for index in range(0, len(encoded), 2):
        code_unit = encoded[index] | (encoded[index + 1] << 8)
        result = _to_int32(result * 31 + code_unit)
    return result


def manufacturer_code(brand: str) -> str:
    """Four-digit manufacturer block: registered prefix or a brand-name hash."""
    hyphenated = _WHITESPACE.sub("-", brand.lower())
    for key, code in KNOWN_MANUFACTURER_CODES.items():
        if key in hyphenated:
            return code
    return f"{abs(_rolling_hash(brand)) % 10_000:04d}"


def item_code(variant: str, pack_size: str, pack_type: str, digits: int = 5) -> str:
    """Deterministic item reference folded to ``digits`` digits."""
    seed = f"{variant}-{pack_size}-{pack_type}".lower()
    return f"{abs(_rolling_hash(seed)) % (10 ** digits):0{digits}d}"


def _check_digit(payload: str, first_weight: int, second_weight: int) -> str:
    if not payload.isdigit():
        raise ValueError(f"Barcode payload must be numeric, got {payload!r}")
    total = sum(
        int(digit) * (first_weight if index % 2 == 0 else second_weight)
        for index, digit in enumerate(payload)
    )
    return str((10 - total % 10) % 10)


def ean13_check_digit(code12: str) -> str:
    if len(code12) != 12:
        raise ValueError("Code must be exactly 12 digits for EAN-13")
    return _check_digit(code12, 1, 3)


def upca_check_digit(code11: str) -> str:
    if len(code11) != 11:
        raise ValueError("Code must be exactly 11 digits for UPC-A")
    return _check_digit(code11, 3, 1)


def generate_ean13(
    brand: str,
    variant: str,
    pack_size: str,
    pack_type: str,
    *,
    country_code: str = DEFAULT_COUNTRY_CODE,
) -> str:
    code12 = country_code + manufacturer_code(brand) + item_code(variant, pack_size, pack_type)
    return code12 + ean13_check_digit(code12)


def validate_ean13(barcode: str) -> bool:
    if not isinstance(barcode, str) or len(barcode) != 13 or not barcode.isdigit():
        return False
    return barcode[12] == ean13_check_digit(barcode[:12])


def generate_upca(brand: str, variant: str, pack_size: str, pack_type: str) -> str:
    code11 = manufacturer_code(brand) + item_code(variant, pack_size, pack_type, digits=7)
    return code11 + upca_check_digit(code11)


def validate_upca(barcode: str) -> bool:
    if not isinstance(barcode, str) or len(barcode) != 12 or not barcode.isdigit():
        return False
    return barcode[11] == upca_check_digit(barcode[:11])


def format_barcode(barcode: str) -> str:
    """Render an EAN-13 as ``XXX XXXX XXXXX X``; other values pass through."""
    if len(barcode) != 13:
        return barcode
    return f"{barcode[:3]} {barcode[3:7]} {barcode[7:12]} {barcode[12]}"
