"""Tests for interactive creation and listing of catalog entities."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from catalog_backoffice.core.errors import (
    BadRequestError,
    ConflictError,
    InternalError,
    NotFoundError,
)
from catalog_backoffice.db.models import Category, Subcategory, Variant
from catalog_backoffice.services.authoring import (
    create_entity,
    create_product,
    create_variant,
    list_entities,
)
from catalog_backoffice.services.hierarchy import EntityKind
from catalog_backoffice.services.identity import derive_product_identity, validate_ean13
from catalog_backoffice.services.lifecycle import delete_entity
from tests.conftest import ACTOR


def _pack(packs, name):
    return next(pack for pack in packs if pack.name == name)


@pytest.fixture
def create(session, invalidator, audit):
    def _create(kind: EntityKind, name: str, parent_id: str | None = None, **attributes):
        return create_entity(
            session,
            kind,
            ACTOR,
            name=name,
            parent_id=parent_id,
            invalidator=invalidator,
            audit=audit,
            **attributes,
        )

    return _create


@pytest.fixture
def noodle_line(session, create, invalidator, audit):
    """Manufacturer, brand, a variant with two pack sizes and types, and a category."""
    manufacturer = create(EntityKind.MANUFACTURER, "Nestle")
    brand = create(EntityKind.BRAND, "Indomie", manufacturer.id)
    variant = create_variant(
        session,
        brand.id,
        ACTOR,
        name="Chicken Curry",
        pack_sizes=["70g", "120g"],
        pack_types=["Single Pack", "Twin Pack"],
    )
    category = create(EntityKind.CATEGORY, "Noodles")
    invalidator.tags.clear()
    audit.entries.clear()
    return {
        "manufacturer": manufacturer,
        "brand": brand,
        "variant": variant,
        "category": category,
        "70g": _pack(variant.pack_sizes, "70g"),
        "120g": _pack(variant.pack_sizes, "120g"),
        "single": _pack(variant.pack_types, "Single Pack"),
        "twin": _pack(variant.pack_types, "Twin Pack"),
    }


class TestCreateEntity:
    def test_keeps_caller_casing(self, create, invalidator, audit) -> None:
        manufacturer = create(EntityKind.MANUFACTURER, "  nestle   Nigeria ")

        assert manufacturer.name == "nestle Nigeria"
        assert manufacturer.status == "ACTIVE"
        assert manufacturer.created_by == ACTOR
        assert invalidator.tags == [f"manufacturer:{manufacturer.id}"]
        assert audit.actions == ["CREATE"]
        assert audit.entries[0]["after"]["name"] == "nestle Nigeria"

    def test_active_sibling_name_conflicts(self, create) -> None:
        nestle = create(EntityKind.MANUFACTURER, "Nestle")
        other = create(EntityKind.MANUFACTURER, "Unilever")
        create(EntityKind.BRAND, "Milo", nestle.id)

        with pytest.raises(ConflictError):
            create(EntityKind.BRAND, "MILO", nestle.id)
        assert create(EntityKind.BRAND, "Milo", other.id).manufacturer_id == other.id

    def test_deleted_name_can_be_reused(self, session, create) -> None:
        first = create(EntityKind.MANUFACTURER, "Nestle")
        delete_entity(session, EntityKind.MANUFACTURER, first.id, ACTOR)

        second = create(EntityKind.MANUFACTURER, "Nestle")
        assert second.id != first.id

    def test_parent_is_required(self, create) -> None:
        with pytest.raises(BadRequestError) as exc_info:
            create(EntityKind.BRAND, "Milo")
        assert "requires a parent manufacturer" in exc_info.value.message

    def test_missing_or_deleted_parent(self, session, create) -> None:
        with pytest.raises(NotFoundError):
            create(EntityKind.BRAND, "Milo", "missing")

        nestle = create(EntityKind.MANUFACTURER, "Nestle")
        delete_entity(session, EntityKind.MANUFACTURER, nestle.id, ACTOR)
        with pytest.raises(NotFoundError):
            create(EntityKind.BRAND, "Milo", nestle.id)

    def test_categories_get_unique_slugs(self, session, create, invalidator) -> None:
        drinks = create(EntityKind.CATEGORY, "Drinks", description="Fizzy")
        beverages = create(EntityKind.CATEGORY, "Beverages")
        first = create(EntityKind.SUBCATEGORY, "Soft Drinks", drinks.id)
        second = create(EntityKind.SUBCATEGORY, "Soft-Drinks", beverages.id)

        assert session.get(Category, drinks.id).slug == "drinks"
        assert session.get(Category, drinks.id).description == "Fizzy"
        assert session.get(Subcategory, first.id).slug == "soft-drinks"
        assert session.get(Subcategory, second.id).slug == "soft-drinks-2"
        assert "categories" in invalidator.tags

    def test_attributes_must_exist_on_kind(self, create) -> None:
        with pytest.raises(BadRequestError) as exc_info:
            create(EntityKind.MANUFACTURER, "Nestle", description="Swiss")
        assert exc_info.value.message == "Manufacturer has no description field"

        nestle = create(EntityKind.MANUFACTURER, "Nestle")
        brand = create(EntityKind.BRAND, "Milo", nestle.id, logo="https://example.com/milo.png")
        assert brand.logo == "https://example.com/milo.png"

    def test_empty_name_and_product_kind_rejected(self, create) -> None:
        with pytest.raises(BadRequestError):
            create(EntityKind.MANUFACTURER, "   ")
        with pytest.raises(BadRequestError):
            create(EntityKind.PRODUCT, "Indomie")

    def test_persistence_failure_is_internal_error(
        self, session, create, audit, monkeypatch
    ) -> None:
        def broken_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", broken_commit)

        with pytest.raises(InternalError) as exc_info:
            create(EntityKind.MANUFACTURER, "Nestle")
        assert exc_info.value.status_code == 500
        assert audit.entries == []


class TestCreateVariant:
    def test_creates_packs_with_variant(self, noodle_line, session, invalidator, audit) -> None:
        variant = create_variant(
            session,
            noodle_line["brand"].id,
            ACTOR,
            name="Onion Chicken",
            description="Mild",
            pack_sizes=["70g"],
            pack_types=["Single Pack", "Family Pack"],
            invalidator=invalidator,
            audit=audit,
        )

        assert variant.description == "Mild"
        assert [pack.name for pack in variant.pack_sizes] == ["70g"]
        assert sorted(pack.name for pack in variant.pack_types) == ["Family Pack", "Single Pack"]
        assert len(invalidator.tags) == 4
        assert invalidator.tags[0] == f"variant:{variant.id}"
        assert audit.entries[-1]["metadata"] == {"pack_sizes": 1, "pack_types": 2}

    def test_duplicate_pack_names_rejected(self, noodle_line, session) -> None:
        with pytest.raises(BadRequestError) as exc_info:
            create_variant(
                session,
                noodle_line["brand"].id,
                ACTOR,
                name="Onion Chicken",
                pack_sizes=["70g", "70G"],
            )

        assert exc_info.value.message == "Pack size names must be unique"
        assert session.execute(select(func.count(Variant.id))).scalar_one() == 1

    def test_duplicate_variant_name_conflicts(self, noodle_line, session) -> None:
        with pytest.raises(ConflictError):
            create_variant(session, noodle_line["brand"].id, ACTOR, name="chicken curry")


class TestCreateProduct:
    def _create(self, session, line, invalidator=None, audit=None, **overrides):
        values = {
            "variant_id": line["variant"].id,
            "pack_size_id": line["70g"].id,
            "pack_type_id": line["single"].id,
            "category_id": line["category"].id,
        }
        values.update(overrides)
        return create_product(session, ACTOR, invalidator=invalidator, audit=audit, **values)

    def test_identity_is_derived(self, session, noodle_line, invalidator, audit) -> None:
        product = self._create(
            session,
            noodle_line,
            invalidator,
            audit,
            price=Decimal("1.20"),
            images=["https://example.com/1.jpg"],
        )

        expected = derive_product_identity("Indomie", "Chicken Curry", "70g", "Single Pack")
        assert product.name == expected.name == "Indomie Chicken Curry 70g (Single Pack)"
        assert product.sku == expected.sku
        assert product.barcode == expected.barcode
        assert validate_ean13(product.barcode)
        assert product.status == "QUEUE"
        assert product.manufacturer_id == noodle_line["manufacturer"].id
        assert product.images == ["https://example.com/1.jpg"]
        assert invalidator.tags == [f"product:{product.id}", "products"]
        assert audit.actions == ["CREATE"]

    def test_live_duplicate_conflicts(self, session, noodle_line) -> None:
        first = self._create(session, noodle_line)

        with pytest.raises(ConflictError) as exc_info:
            self._create(session, noodle_line)
        assert exc_info.value.details["product_ids"] == [first.id]

    def test_archived_product_does_not_block(self, session, noodle_line) -> None:
        first = self._create(session, noodle_line)
        delete_entity(session, EntityKind.PRODUCT, first.id, ACTOR)

        assert self._create(session, noodle_line).id != first.id

    def test_pack_from_another_variant_rejected(self, session, noodle_line) -> None:
        other = create_variant(
            session, noodle_line["brand"].id, ACTOR, name="Onion Chicken", pack_sizes=["70g"]
        )

        with pytest.raises(BadRequestError) as exc_info:
            self._create(session, noodle_line, pack_size_id=other.pack_sizes[0].id)
        assert "does not belong to variant" in exc_info.value.message

    def test_subcategory_must_belong_to_category(self, session, noodle_line) -> None:
        drinks = create_entity(session, EntityKind.CATEGORY, ACTOR, name="Drinks")
        juices = create_entity(
            session, EntityKind.SUBCATEGORY, ACTOR, name="Juices", parent_id=drinks.id
        )

        with pytest.raises(BadRequestError):
            self._create(session, noodle_line, subcategory_id=juices.id)

    def test_deleted_pack_is_not_found(self, session, noodle_line) -> None:
        delete_entity(session, EntityKind.PACK_SIZE, noodle_line["70g"].id, ACTOR)

        with pytest.raises(NotFoundError):
            self._create(session, noodle_line)


class TestListEntities:
    def test_filters_and_pagination(self, session, noodle_line, create) -> None:
        nestle = noodle_line["manufacturer"]
        create(EntityKind.BRAND, "Milo", nestle.id)
        nescafe = create(EntityKind.BRAND, "Nescafe", nestle.id)
        other = create(EntityKind.MANUFACTURER, "Unilever")
        create(EntityKind.BRAND, "Knorr", other.id)
        delete_entity(session, EntityKind.BRAND, nescafe.id, ACTOR)

        brands, total = list_entities(session, EntityKind.BRAND, parent_id=nestle.id)
        assert total == 2
        assert [brand.name for brand in brands] == ["Indomie", "Milo"]

        _, with_deleted = list_entities(
            session, EntityKind.BRAND, parent_id=nestle.id, include_deleted=True
        )
        assert with_deleted == 3

        page, total = list_entities(session, EntityKind.BRAND, page=2, page_size=2)
        assert total == 3
        assert [brand.name for brand in page] == ["Milo"]

        named, _ = list_entities(session, EntityKind.BRAND, name="kno")
        assert [brand.name for brand in named] == ["Knorr"]

    def test_parent_filter_needs_a_parent_kind(self, session) -> None:
        with pytest.raises(BadRequestError):
            list_entities(session, EntityKind.MANUFACTURER, parent_id="x")
