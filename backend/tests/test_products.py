# Overview: Pytest coverage for product catalog behavior.

import pytest

from backoffice.errors import ConflictError
from backoffice.models import LedgerEvent, Product
from backoffice.services import products_service, transaction_service

from conftest import auth_headers, get_auth_token, make_product, sale_payload


class TestCreateProduct:

    def test_create_stamps_tenant(self, db_session, ctx_sub_a, main_a):
        created = products_service.create_product(ctx_sub_a, patch={"sku": "NEW-1", "name": "New"})

        assert created["owner_user_id"] == main_a.id
        assert created["current_stock"] == 0
        assert created["unit_of_measure"] == "unit"
        assert created["context"] == {}

    def test_create_with_initial_stock(self, db_session, ctx_a):
        created = products_service.create_product(
            ctx_a, patch={"sku": "NEW-2", "name": "Stocked", "current_stock": 25}
        )
        assert created["current_stock"] == 25

    def test_sku_is_unique_per_tenant_case_insensitive(self, db_session, ctx_a, product_a):
        with pytest.raises(ConflictError):
            products_service.create_product(ctx_a, patch={"sku": "prod-a-001", "name": "Dup"})

    def test_same_sku_allowed_in_other_tenant(self, db_session, ctx_b, product_a):
        created = products_service.create_product(ctx_b, patch={"sku": "PROD-A-001", "name": "Twin"})
        assert created["sku"] == "PROD-A-001"

    def test_create_is_audited(self, db_session, ctx_a):
        created = products_service.create_product(ctx_a, patch={"sku": "AUD-1", "name": "Audited"})

        event = db_session.query(LedgerEvent).filter_by(entity_type="product", entity_id=created["id"]).one()
        assert event.event_type == "product.created"


class TestUpdateProduct:

    def test_update_fields_and_merge_context(self, db_session, ctx_a, product_a):
        products_service.update_product(ctx_a, product_a.id, patch={"context": {"color": "red"}})
        updated = products_service.update_product(
            ctx_a, product_a.id, patch={"name": "Renamed", "context": {"size": "L"}}
        )

        assert updated["name"] == "Renamed"
        assert updated["context"] == {"color": "red", "size": "L"}
        assert updated["current_stock"] == 10

    def test_update_to_existing_sku_conflicts(self, db_session, main_a, ctx_a, product_a):
        other = make_product(db_session, main_a, "PROD-A-002", "Other")
        with pytest.raises(ConflictError):
            products_service.update_product(ctx_a, other.id, patch={"sku": "Prod-A-001"})

    def test_changing_sku_case_of_itself_is_allowed(self, db_session, ctx_a, product_a):
        updated = products_service.update_product(ctx_a, product_a.id, patch={"sku": "prod-a-001"})
        assert updated["sku"] == "prod-a-001"

    def test_deactivate(self, db_session, ctx_a, product_a):
        result = products_service.set_product_status(ctx_a, product_a.id, is_active=False)
        assert result["is_active"] is False


class TestListProducts:

    @pytest.fixture
    def catalog(self, db_session, main_a, product_a):
        make_product(db_session, main_a, "CAB-01", "Copper Cable", category="Electrical")
        make_product(db_session, main_a, "HAM-01", "Claw Hammer", category="hardware")

    def test_search_matches_name_or_sku(self, ctx_a, catalog):
        names = [p["name"] for p in products_service.list_products(ctx_a, search="cab")["items"]]
        assert names == ["Copper Cable"]

        by_sku = products_service.list_products(ctx_a, search="ham-")["items"]
        assert [p["sku"] for p in by_sku] == ["HAM-01"]

    def test_category_is_case_insensitive(self, ctx_a, catalog):
        names = [p["name"] for p in products_service.list_products(ctx_a, category="HARDWARE")["items"]]
        assert names == ["Claw Hammer", "Product A"]

    def test_filter_active(self, db_session, ctx_a, catalog, product_a):
        products_service.set_product_status(ctx_a, product_a.id, is_active=False)
        result = products_service.list_products(ctx_a, is_active=False)
        assert [p["id"] for p in result["items"]] == [product_a.id]


class TestDeleteProduct:

    def test_delete_unreferenced(self, db_session, ctx_a, product_a):
        products_service.delete_product(ctx_a, product_a.id)

        db_session.expire_all()
        assert db_session.get(Product, product_a.id) is None

    def test_delete_referenced_conflicts(self, db_session, ctx_a, product_a, client_a):
        transaction_service.create_sale(ctx_a, sale_payload(client_a.id, (product_a.id, 1, 100)))

        with pytest.raises(ConflictError) as exc_info:
            products_service.delete_product(ctx_a, product_a.id)

        assert exc_info.value.details == {"transaction_count": 1}
        db_session.expire_all()
        assert db_session.get(Product, product_a.id) is not None


class TestProductRoutes:

    def test_create_and_fetch(self, client, db_session, main_a):
        token = get_auth_token(client, "owner_a")

        created = client.post("/api/products", json={
            "sku": "HTTP-1",
            "name": "Over HTTP",
            "sale_price_cents": 2500,
            "current_stock": 3,
        }, headers=auth_headers(token))

        assert created.status_code == 201
        fetched = client.get(f"/api/products/{created.json['id']}", headers=auth_headers(token))
        assert fetched.json["sale_price_cents"] == 2500
        assert fetched.json["current_stock"] == 3

    @pytest.mark.parametrize("payload,message", [
        ({"name": "No SKU"}, "Missing required fields: sku"),
        ({"sku": "X", "name": "X", "owner_user_id": 2}, "Field not allowed: owner_user_id"),
        ({"sku": "X", "name": "X", "sale_price_cents": -1}, "sale_price_cents must be >= 0"),
        ({"sku": "X", "name": "X", "current_stock": 1.5}, "current_stock must be an integer, not a decimal"),
        ({"sku": "X", "name": "X", "current_stock": 10 ** 20}, "current_stock cannot exceed 1000000"),
        ({"sku": "  ", "name": "X"}, "sku cannot be blank"),
    ])
    def test_create_validation(self, client, db_session, main_a, payload, message):
        token = get_auth_token(client, "owner_a")

        response = client.post("/api/products", json=payload, headers=auth_headers(token))

        assert response.status_code == 400
        assert response.json["error"] == message

    def test_stock_cannot_be_patched(self, client, db_session, main_a, product_a):
        token = get_auth_token(client, "owner_a")

        response = client.patch(
            f"/api/products/{product_a.id}", json={"current_stock": 99}, headers=auth_headers(token)
        )

        assert response.status_code == 400
        assert response.json["error"] == "Field not allowed: current_stock"

    def test_stock_adjustment_route(self, client, db_session, main_a, product_a):
        token = get_auth_token(client, "owner_a")

        response = client.post(
            f"/api/products/{product_a.id}/stock-adjustments",
            json={"adjustment": -4, "reason": "Damaged"},
            headers=auth_headers(token),
        )

        assert response.status_code == 200
        assert response.json["current_stock"] == 6

    def test_stock_adjustment_below_zero_is_422(self, client, db_session, main_a, product_a):
        token = get_auth_token(client, "owner_a")

        response = client.post(
            f"/api/products/{product_a.id}/stock-adjustments",
            json={"adjustment": -50},
            headers=auth_headers(token),
        )

        assert response.status_code == 422
        assert response.json["details"]["available"] == 10

    def test_stock_levels_route(self, client, db_session, main_a, product_a, product_b):
        token = get_auth_token(client, "owner_a")

        response = client.get(
            f"/api/products/stock?ids={product_a.id},{product_b.id}", headers=auth_headers(token)
        )

        assert response.status_code == 200
        assert [row["product_id"] for row in response.json["items"]] == [product_a.id]

    def test_duplicate_sku_is_409(self, client, db_session, main_a, product_a):
        token = get_auth_token(client, "owner_a")

        response = client.post(
            "/api/products", json={"sku": "PROD-A-001", "name": "Again"}, headers=auth_headers(token)
        )

        assert response.status_code == 409
