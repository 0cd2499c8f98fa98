"""HTTP tests for the catalog back-office API."""

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from catalog_backoffice.api.dependencies.collaborators import (
    get_audit_sink,
    get_invalidator,
)
from catalog_backoffice.api.dependencies.db import get_session
from catalog_backoffice.api.routers import jobs as jobs_router
from catalog_backoffice.api.routers import uploads as uploads_router
from catalog_backoffice.main import create_app
from catalog_backoffice.services.bulk_ingest import generate_template

HEADERS = {"X-Actor-Id": "admin-1"}


@pytest.fixture
def client(session_factory, invalidator, audit):
    app = create_app(create_tables=False)

    def override_session():
        db = session_factory()
        try:
            yield db
            db.commit()
        finally:
            db.close()

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_invalidator] = lambda: invalidator
    app.dependency_overrides[get_audit_sink] = lambda: audit
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seeded(session, indomie_range):
    """Seeded catalog with the test session's transaction closed."""
    session.commit()
    return indomie_range


def _product_ids(report) -> list[str]:
    return [result.product_id for result in report.row_results]


def _csv_upload(content: str, filename: str = "catalog.csv") -> dict:
    return {"file": (filename, content.encode("utf-8"), "text/csv")}


class TestHealth:
    def test_live(self, client: TestClient) -> None:
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestUploads:
    def test_actor_header_required(self, client: TestClient) -> None:
        response = client.post("/api/uploads/", files=_csv_upload(generate_template()))
        assert response.status_code == 401

    def test_synchronous_upload_returns_report(
        self, client: TestClient, invalidator, audit
    ) -> None:
        response = client.post(
            "/api/uploads/", files=_csv_upload(generate_template()), headers=HEADERS
        )

        assert response.status_code == 200
        body = response.json()
        assert body["successful_rows"] == 2
        assert body["entities_created"]["products"] == 2
        assert body["row_results"][0]["generated_sku"] == "COCA-COLA-ORIGINAL-500ML-BOTTLE"
        assert "products" in invalidator.tags
        assert audit.actions == ["BULK_UPLOAD"]

    def test_synchronous_upload_runs_off_the_event_loop(
        self, client: TestClient, monkeypatch
    ) -> None:
        real_ingest = uploads_router.ingest_rows
        seen = {}

        def ingest_outside_loop(*args, **kwargs):
            try:
                asyncio.get_running_loop()
                seen["on_event_loop"] = True
            except RuntimeError:
                seen["on_event_loop"] = False
            return real_ingest(*args, **kwargs)

        monkeypatch.setattr(uploads_router, "ingest_rows", ingest_outside_loop)
        response = client.post(
            "/api/uploads/", files=_csv_upload(generate_template()), headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json()["successful_rows"] == 2
        assert seen == {"on_event_loop": False}

    def test_non_csv_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/uploads/",
            files=_csv_upload(generate_template(), filename="catalog.xlsx"),
            headers=HEADERS,
        )
        assert response.status_code == 400

    def test_bad_headers_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/uploads/", files=_csv_upload("name,price\nMilo,1\n"), headers=HEADERS
        )
        assert response.status_code == 400
        assert "Invalid CSV headers" in response.json()["detail"]

    def test_template_download(self, client: TestClient) -> None:
        response = client.get("/api/uploads/template")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert response.text.startswith("product_name,product_description,price")


class TestCatalogEndpoints:
    def test_rename_brand_cascades(self, client: TestClient, seeded) -> None:
        product_id = _product_ids(seeded)[0]
        brand_id = client.get(f"/api/products/{product_id}").json()["brand_id"]

        response = client.patch(
            f"/api/catalog/brands/{brand_id}",
            json={"name": "Indomie Noodles"},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Indomie Noodles"
        assert response.json()["kind"] == "brands"
        product = client.get(f"/api/products/{product_id}").json()
        assert product["sku"] == "INDOMIE-NOODLES-CHICKEN-CURRY-70G-SINGLE-PACK"

    def test_unknown_kind_is_422(self, client: TestClient) -> None:
        response = client.patch(
            "/api/catalog/widgets/abc", json={"name": "X"}, headers=HEADERS
        )
        assert response.status_code == 422

    def test_missing_entity_is_404(self, client: TestClient) -> None:
        response = client.patch(
            "/api/catalog/brands/missing", json={"name": "X"}, headers=HEADERS
        )
        assert response.status_code == 404

    def test_sibling_conflict_is_409(self, client: TestClient, seeded) -> None:
        product = client.get(f"/api/products/{_product_ids(seeded)[1]}").json()
        response = client.patch(
            f"/api/catalog/pack-sizes/{product['pack_size_id']}",
            json={"name": "70G"},
            headers=HEADERS,
        )
        assert response.status_code == 409
        assert "already exists" in response.json()["detail"]

    def test_delete_blocked_by_children(self, client: TestClient, seeded) -> None:
        product = client.get(f"/api/products/{_product_ids(seeded)[0]}").json()
        response = client.delete(
            f"/api/catalog/brands/{product['brand_id']}", headers=HEADERS
        )
        assert response.status_code == 400
        assert "still referenced" in response.json()["detail"]

    def test_delete_and_reactivate_product(self, client: TestClient, seeded, audit) -> None:
        product_id = _product_ids(seeded)[0]

        deleted = client.delete(f"/api/catalog/products/{product_id}", headers=HEADERS)
        assert deleted.status_code == 200
        assert deleted.json()["status"] == "ARCHIVED"
        assert deleted.json()["deleted_at"] is not None

        restored = client.post(
            f"/api/catalog/products/{product_id}/reactivate", headers=HEADERS
        )
        assert restored.status_code == 200
        assert restored.json()["status"] == "QUEUE"
        assert audit.actions[-2:] == ["DELETE", "REACTIVATE"]

    def test_description_can_be_cleared(self, client: TestClient, seeded) -> None:
        product = client.get(f"/api/products/{_product_ids(seeded)[0]}").json()
        url = f"/api/catalog/categories/{product['category_id']}"

        set_response = client.patch(url, json={"description": "Quick meals"}, headers=HEADERS)
        assert set_response.json()["description"] == "Quick meals"
        assert set_response.json()["slug"] == "noodles"

        rename = client.patch(url, json={"name": "Pasta & Noodles"}, headers=HEADERS)
        assert rename.json()["description"] == "Quick meals"

        cleared = client.patch(url, json={"description": None}, headers=HEADERS)
        assert cleared.json()["description"] is None
        assert cleared.json()["slug"] == "pasta-noodles"

    def test_put_variant(self, client: TestClient, seeded) -> None:
        product = client.get(f"/api/products/{_product_ids(seeded)[0]}").json()
        variant_id = product["variant_id"]
        second = client.get(f"/api/products/{_product_ids(seeded)[1]}").json()

        response = client.put(
            f"/api/catalog/variants/{variant_id}",
            json={
                "name": "Chicken Pepper",
                "pack_sizes": [
                    {"id": product["pack_size_id"], "name": "75g"},
                    {"id": second["pack_size_id"], "name": "120g"},
                    {"name": "200g"},
                ],
            },
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Chicken Pepper"
        assert sorted(pack["name"] for pack in body["pack_sizes"]) == ["120g", "200g", "75g"]
        refreshed = client.get(f"/api/products/{_product_ids(seeded)[0]}").json()
        assert refreshed["sku"] == "INDOMIE-CHICKEN-PEPPER-75G-SINGLE-PACK"

    def test_put_variant_blocked_removal(self, client: TestClient, seeded) -> None:
        product = client.get(f"/api/products/{_product_ids(seeded)[0]}").json()
        response = client.put(
            f"/api/catalog/variants/{product['variant_id']}",
            json={"pack_types": [{"id": product["pack_type_id"], "name": "Single Pack"}]},
            headers=HEADERS,
        )
        assert response.status_code == 400


class TestCatalogCreateAndRead:
    def _post(self, client: TestClient, path: str, payload: dict) -> dict:
        response = client.post(f"/api/catalog/{path}", json=payload, headers=HEADERS)
        assert response.status_code == 201, response.text
        return response.json()

    def test_build_a_product_interactively(self, client: TestClient, audit, invalidator) -> None:
        manufacturer = self._post(client, "manufacturers", {"name": "Nestle"})
        brand = self._post(
            client, "brands", {"name": "Milo", "parent_id": manufacturer["id"]}
        )
        variant = self._post(
            client,
            "variants",
            {
                "brand_id": brand["id"],
                "name": "Original",
                "pack_sizes": ["400g"],
                "pack_types": ["Tin"],
            },
        )
        category = self._post(client, "categories", {"name": "Beverages"})

        assert brand["parent_id"] == manufacturer["id"]
        assert category["slug"] == "beverages"
        assert [pack["name"] for pack in variant["pack_sizes"]] == ["400g"]

        product = self._post(
            client,
            "products",
            {
                "variant_id": variant["id"],
                "pack_size_id": variant["pack_sizes"][0]["id"],
                "pack_type_id": variant["pack_types"][0]["id"],
                "category_id": category["id"],
                "price": "4.50",
            },
        )

        assert product["sku"] == "MILO-ORIGINAL-400G-TIN"
        assert product["name"] == "Milo Original 400g (Tin)"
        assert product["status"] == "QUEUE"
        assert product["manufacturer_id"] == manufacturer["id"]
        assert client.get(f"/api/products/{product['id']}").json()["barcode_valid"] is True
        assert audit.actions == ["CREATE"] * 5
        assert "products" in invalidator.tags

    def test_create_requires_actor(self, client: TestClient) -> None:
        response = client.post("/api/catalog/manufacturers", json={"name": "Nestle"})
        assert response.status_code == 401

    def test_duplicate_sibling_is_409(self, client: TestClient, seeded) -> None:
        response = client.post(
            "/api/catalog/manufacturers", json={"name": "NESTLE"}, headers=HEADERS
        )
        assert response.status_code == 409

    def test_missing_parent_is_404(self, client: TestClient) -> None:
        response = client.post(
            "/api/catalog/brands", json={"name": "Milo", "parent_id": "missing"}, headers=HEADERS
        )
        assert response.status_code == 404

    def test_duplicate_product_is_409(self, client: TestClient, seeded) -> None:
        product = client.get(f"/api/products/{_product_ids(seeded)[0]}").json()
        response = client.post(
            "/api/catalog/products",
            json={
                "variant_id": product["variant_id"],
                "pack_size_id": product["pack_size_id"],
                "pack_type_id": product["pack_type_id"],
                "category_id": product["category_id"],
            },
            headers=HEADERS,
        )
        assert response.status_code == 409
        assert "already exists" in response.json()["detail"]

    def test_invalid_discount_is_422(self, client: TestClient) -> None:
        response = client.post(
            "/api/catalog/products",
            json={
                "variant_id": "v",
                "pack_size_id": "s",
                "pack_type_id": "t",
                "category_id": "c",
                "discount": "150",
            },
            headers=HEADERS,
        )
        assert response.status_code == 422

    def test_list_and_fetch(self, client: TestClient, seeded) -> None:
        product = client.get(f"/api/products/{_product_ids(seeded)[0]}").json()

        brands = client.get("/api/catalog/brands").json()
        assert brands["total"] == 1
        assert brands["items"][0]["name"] == "Indomie"

        scoped = client.get(
            "/api/catalog/pack-sizes", params={"parent_id": product["variant_id"]}
        ).json()
        assert [item["name"] for item in scoped["items"]] == ["120g", "70g"]

        brand = client.get(f"/api/catalog/brands/{product['brand_id']}").json()
        assert brand["parent_id"] == product["manufacturer_id"]

        variant = client.get(f"/api/catalog/variants/{product['variant_id']}").json()
        assert variant["name"] == "Chicken Curry"
        assert sorted(pack["name"] for pack in variant["pack_types"]) == [
            "Single Pack",
            "Twin Pack",
        ]

    def test_fetch_shows_deleted_entities(self, client: TestClient, seeded) -> None:
        product_id = _product_ids(seeded)[0]
        client.delete(f"/api/catalog/products/{product_id}", headers=HEADERS)

        body = client.get(f"/api/catalog/products/{product_id}").json()
        assert body["status"] == "ARCHIVED"
        assert body["deleted_at"] is not None
        assert client.get("/api/catalog/products").json()["total"] == 1

    def test_read_errors(self, client: TestClient) -> None:
        assert client.get("/api/catalog/brands/missing").status_code == 404
        assert client.get("/api/catalog/variants/missing").status_code == 404
        assert (
            client.get("/api/catalog/manufacturers", params={"parent_id": "x"}).status_code
            == 400
        )


class TestProducts:
    def test_list_and_filter(self, client: TestClient, seeded) -> None:
        everything = client.get("/api/products/").json()
        assert everything["total"] == 2

        twin = client.get("/api/products/", params={"sku": "twin"}).json()
        assert [item["sku"] for item in twin["items"]] == [
            "INDOMIE-CHICKEN-CURRY-120G-TWIN-PACK"
        ]

        queued = client.get("/api/products/", params={"status": "queue"}).json()
        assert queued["total"] == 2

        page = client.get("/api/products/", params={"page": 2, "page_size": 1}).json()
        assert page["total"] == 2
        assert len(page["items"]) == 1

    def test_deleted_products_hidden_by_default(self, client: TestClient, seeded) -> None:
        client.delete(f"/api/catalog/products/{_product_ids(seeded)[0]}", headers=HEADERS)

        assert client.get("/api/products/").json()["total"] == 1
        assert (
            client.get("/api/products/", params={"include_deleted": True}).json()["total"] == 2
        )

    def test_detail_verifies_barcode(self, client: TestClient, seeded) -> None:
        body = client.get(f"/api/products/{_product_ids(seeded)[0]}").json()

        assert body["barcode_valid"] is True
        assert body["barcode"].startswith("6153456")
        assert body["barcode_display"].replace(" ", "") == body["barcode"]

    def test_detail_not_found(self, client: TestClient) -> None:
        assert client.get("/api/products/missing").status_code == 404


class _RecordingTask:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def apply_async(self, args=None, queue=None, **kwargs):
        self.calls.append({"args": args, "queue": queue})


class TestJobs:
    @pytest.fixture
    def task(self, monkeypatch) -> _RecordingTask:
        task = _RecordingTask()
        monkeypatch.setattr(uploads_router, "ingest_catalog_task", task)
        monkeypatch.setattr(uploads_router, "publish_progress", lambda *a, **k: None)
        return task

    def test_enqueue_import(self, client: TestClient, task, monkeypatch) -> None:
        response = client.post(
            "/api/uploads/jobs", files=_csv_upload(generate_template()), headers=HEADERS
        )

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "pending"
        assert body["original_filename"] == "catalog.csv"

        (call,) = task.calls
        job_id, staged_path = call["args"]
        assert job_id == body["id"]
        assert call["queue"] == "imports"
        assert Path(staged_path).read_text(encoding="utf-8") == generate_template()
        Path(staged_path).unlink()

        monkeypatch.setattr(
            jobs_router,
            "fetch_progress",
            lambda _: {"progress": 0.5, "status": "processing", "message": "Processed 1/2 rows"},
        )
        job = client.get(f"/api/jobs/{job_id}").json()
        assert job["status"] == "processing"
        assert job["progress"] == 0.5

        listed = client.get("/api/jobs/").json()
        assert [item["id"] for item in listed] == [job_id]

    def test_enqueue_requires_csv(self, client: TestClient, task) -> None:
        response = client.post(
            "/api/uploads/jobs",
            files=_csv_upload("x", filename="catalog.txt"),
            headers=HEADERS,
        )
        assert response.status_code == 400
        assert task.calls == []

    def test_unknown_job(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(jobs_router, "fetch_progress", lambda _: {})
        assert client.get("/api/jobs/missing").status_code == 404
