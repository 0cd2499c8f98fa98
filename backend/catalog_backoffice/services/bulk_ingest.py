"""Business logic for spreadsheet ingestion into the catalog hierarchy.

Rows are processed one at a time. Each ancestor resolution commits on its own
and product creation is a second short transaction, so a failing row only
rolls back its own uncommitted work and the run carries on.
"""

from __future__ import annotations

import csv
import io
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catalog_backoffice.core.config import get_settings
from catalog_backoffice.core.errors import (
    BadRequestError,
    CatalogError,
    ConflictError,
    IngestTimeoutError,
)
from catalog_backoffice.db.models import Brand, Product, ProductStatus
from catalog_backoffice.services import audit as audit_actions
from catalog_backoffice.services.audit import AuditSink, safe_record
from catalog_backoffice.services.cache_invalidation import (
    CATEGORIES_TAG,
    PRODUCTS_TAG,
    CacheInvalidator,
    invalidate_all,
)
from catalog_backoffice.services.hierarchy import EntityKind, find_live_product_clash
from catalog_backoffice.services.identity import derive_product_identity, normalize_name
from catalog_backoffice.services.resolver import (
    HierarchyResolver,
    ResolutionStats,
    ResolveCache,
    ResolvedEntity,
)
from catalog_backoffice.storage.staging import save_upload
from catalog_backoffice.utils.csv_validator import (
    TEMPLATE_HEADERS,
    ProductRow,
    ValidationError,
    normalize_row,
    parse_product_row,
    validate_headers,
)

logger = logging.getLogger(__name__)

ENTITY_KEYS = [
    "manufacturers",
    "brands",
    "categories",
    "subcategories",
    "variants",
    "pack_sizes",
    "pack_types",
]

TEMPLATE_SAMPLE_ROWS = [
    [
        "Coca Cola Original",
        "Classic cola with original taste",
        "2.50",
        "10",
        "The Coca-Cola Company",
        "Coca Cola",
        "https://example.com/coca-cola-logo.png",
        "Original",
        "Beverages",
        "Non-alcoholic drinks",
        "Soft Drinks",
        "Carbonated beverages",
        "500ml",
        "Bottle",
        "https://example.com/product1.jpg,https://example.com/product2.jpg",
        "https://example.com/thumbnail.jpg",
    ],
    [
        "Pepsi Max",
        "Zero calorie cola drink",
        "2.30",
        "5",
        "PepsiCo",
        "Pepsi",
        "",
        "Max",
        "Beverages",
        "Non-alcoholic drinks",
        "Soft Drinks",
        "Zero calorie carbonated beverages",
        "330ml",
        "Can",
        "",
        "",
    ],
]

ProgressCallback = Callable[[int, int, "IngestReport"], None]


@dataclass
class RowResult:
    row_number: int
    success: bool = False
    product_id: str | None = None
    product_name: str | None = None
    generated_sku: str | None = None
    barcode: str | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    created_entities: list[str] = field(default_factory=list)
    referenced_entities: list[str] = field(default_factory=list)


@dataclass
class IngestReport:
    total_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    entities_created: dict[str, int] = field(
        default_factory=lambda: dict.fromkeys(ENTITY_KEYS + ["products"], 0)
    )
    entities_referenced: dict[str, int] = field(
        default_factory=lambda: dict.fromkeys(ENTITY_KEYS, 0)
    )
    row_results: list[RowResult] = field(default_factory=list)
    processing_time_ms: int = 0
    summary: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_stats(self, stats: ResolutionStats) -> None:
        for kind in stats.created.keys() | stats.referenced.keys():
            key = _report_key(kind)
            self.entities_created[key] = stats.created[kind]
            self.entities_referenced[key] = stats.referenced[kind]


def _report_key(kind: EntityKind) -> str:
    return kind.value.replace("-", "_")


def build_summary(report: IngestReport) -> str:
    summary = (
        f"Bulk upload completed: {report.successful_rows}/{report.total_rows} "
        f"products created successfully"
    )
    if report.failed_rows:
        summary += f", {report.failed_rows} failed"
    total_created = sum(report.entities_created.values())
    total_referenced = sum(report.entities_referenced.values())
    if total_created:
        summary += f". Created {total_created} new entities"
    if total_referenced:
        summary += f", referenced {total_referenced} existing entities"
    return summary


# ---------------------------------------------------------------------------
# File handling
# ---------------------------------------------------------------------------


async def stage_file(upload_file: UploadFile) -> Path:
    """Persist uploaded CSV to local staging storage and return its path."""
    try:
        await upload_file.seek(0)
        return save_upload(upload_file.file, upload_file.filename)
    except OSError as e:
        logger.error(f"OS error saving uploaded file: {e}", exc_info=True)
        raise ValueError(f"Failed to save file: {str(e)}") from e


def parse_csv(content: bytes | str) -> list[dict[str, str]]:
    """Parse CSV content into normalized row dicts, checking the header row."""
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise BadRequestError(f"File encoding error: {str(e)}") from e

    reader = csv.DictReader(io.StringIO(content))
    try:
        if not reader.fieldnames:
            raise BadRequestError("CSV file appears to be empty or invalid")
        try:
            validate_headers(reader.fieldnames)
        except ValidationError as e:
            raise BadRequestError(f"Invalid CSV headers: {str(e)}") from e
        return [normalize_row(row) for row in reader]
    except csv.Error as e:
        raise BadRequestError(f"CSV parsing error: {str(e)}") from e


def read_csv_file(file_path: Path) -> list[dict[str, str]]:
    """Load and parse a staged CSV file."""
    try:
        return parse_csv(file_path.read_bytes())
    except FileNotFoundError as e:
        raise BadRequestError(f"CSV file not found: {file_path}") from e
    except PermissionError as e:
        raise BadRequestError(f"Permission denied reading file: {file_path}") from e


def generate_template() -> str:
    """CSV template: header row followed by two fully quoted sample rows."""
    buffer = io.StringIO()
    buffer.write(",".join(TEMPLATE_HEADERS) + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(TEMPLATE_SAMPLE_ROWS)
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Row processing
# ---------------------------------------------------------------------------


def _note(result: RowResult, resolved: ResolvedEntity) -> ResolvedEntity:
    label = f"{_report_key(resolved.kind)}:{resolved.name}"
    if resolved.was_created:
        result.created_entities.append(label)
    else:
        result.referenced_entities.append(label)
    return resolved


def _ingest_row(
    session: Session,
    resolver: HierarchyResolver,
    row: ProductRow,
    result: RowResult,
    actor: str,
) -> Product:
    manufacturer = _note(result, resolver.resolve(EntityKind.MANUFACTURER, row.manufacturer))
    category = _note(
        result,
        resolver.resolve(
            EntityKind.CATEGORY, row.category, description=row.category_description
        ),
    )
    subcategory = None
    if row.subcategory:
        subcategory = _note(
            result,
            resolver.resolve(
                EntityKind.SUBCATEGORY,
                row.subcategory,
                category.id,
                description=row.subcategory_description,
            ),
        )
    brand = _note(
        result,
        resolver.resolve(EntityKind.BRAND, row.brand, manufacturer.id, logo=row.brand_logo),
    )
    variant = _note(result, resolver.resolve(EntityKind.VARIANT, row.variant, brand.id))
    pack_size = _note(result, resolver.resolve(EntityKind.PACK_SIZE, row.pack_size, variant.id))
    pack_type = _note(result, resolver.resolve(EntityKind.PACK_TYPE, row.pack_type, variant.id))

    identity = derive_product_identity(
        brand.name,
        variant.name,
        pack_size.name,
        pack_type.name,
        country_code=get_settings().barcode_country_code,
    )
    result.generated_sku = identity.sku
    result.barcode = identity.barcode

    if find_live_product_clash(session, identity.name, identity.sku) is not None:
        raise ConflictError(
            f"Product with name \"{identity.name}\" or SKU \"{identity.sku}\" already exists"
        )

    product = Product(
        sku=identity.sku,
        name=identity.name,
        barcode=identity.barcode,
        description=row.product_description or None,
        price=row.price,
        discount=row.discount,
        images=row.product_images,
        thumbnail=row.product_thumbnail or None,
        status=ProductStatus.QUEUE.value,
        manufacturer_id=session.get(Brand, brand.id).manufacturer_id,
        brand_id=brand.id,
        variant_id=variant.id,
        pack_size_id=pack_size.id,
        pack_type_id=pack_type.id,
        category_id=category.id,
        subcategory_id=subcategory.id if subcategory else None,
        created_by=actor,
        updated_by=actor,
    )
    session.add(product)
    session.commit()

    if row.price is None:
        result.warnings.append("Price not provided - can be set later")
    if not row.product_description:
        result.warnings.append("Product description not provided")
    if normalize_name(row.product_name) != normalize_name(identity.name):
        result.warnings.append(
            f"Supplied product name \"{row.product_name}\" differs from the generated "
            f"name \"{identity.name}\"; the generated name was stored"
        )
    return product


def ingest_rows(
    session: Session,
    rows: Iterable[dict[str, str]],
    actor: str,
    *,
    invalidator: CacheInvalidator | None = None,
    audit: AuditSink | None = None,
    time_limit_seconds: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> IngestReport:
    """Run the ingestion pipeline over parsed rows and return the run report.

    Raises ``IngestTimeoutError`` when the run exceeds its time limit; rows
    committed before that point stay committed.
    """
    rows = list(rows)
    limit = time_limit_seconds or get_settings().ingest_time_limit_seconds
    started = time.monotonic()
    report = IngestReport(total_rows=len(rows))
    stats = ResolutionStats()
    resolver = HierarchyResolver(session, actor, ResolveCache(), stats, commit=True)

    # Row 1 is the header row.
    for processed, raw in enumerate(rows, start=1):
        elapsed = time.monotonic() - started
        if elapsed > limit:
            logger.error(
                f"Bulk ingestion exceeded {limit}s after {processed - 1}/{len(rows)} rows"
            )
            raise IngestTimeoutError(
                f"Bulk ingestion timed out after {processed - 1} of {len(rows)} rows",
                {"processed_rows": processed - 1, "time_limit_seconds": limit},
            )

        result = RowResult(row_number=processed + 1)
        try:
            parsed = parse_product_row(raw)
            product = _ingest_row(session, resolver, parsed, result, actor)
        except (CatalogError, ValidationError) as e:
            session.rollback()
            result.error = getattr(e, "message", None) or str(e)
            report.failed_rows += 1
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning(f"Database error on row {result.row_number}: {e}", exc_info=True)
            result.error = f"Database error: {str(e)}"
            report.failed_rows += 1
        else:
            result.success = True
            result.product_id = product.id
            result.product_name = product.name
            report.successful_rows += 1
        report.row_results.append(result)

        if on_progress is not None:
            on_progress(processed, len(rows), report)

    report.apply_stats(stats)
    report.entities_created["products"] = report.successful_rows
    report.processing_time_ms = int((time.monotonic() - started) * 1000)
    report.summary = build_summary(report)
    logger.info(report.summary)

    tags = []
    if report.successful_rows:
        tags.append(PRODUCTS_TAG)
    if report.entities_created["categories"] or report.entities_created["subcategories"]:
        tags.append(CATEGORIES_TAG)
    invalidate_all(invalidator, tags)
    safe_record(
        audit,
        audit_actions.BULK_UPLOAD,
        "product",
        None,
        actor,
        metadata={
            "total_rows": report.total_rows,
            "successful_rows": report.successful_rows,
            "failed_rows": report.failed_rows,
            "entities_created": report.entities_created,
        },
    )
    return report
