# Overview: Pytest coverage for sales and inventory reports.

import pytest

from backoffice.models import Client
from backoffice.services import products_service, reporting_service, transaction_service
from backoffice.validation import ValidationError

from conftest import auth_headers, get_auth_token, make_product, purchase_payload, sale_payload


@pytest.fixture
def activity(db_session, main_a, ctx_a, ctx_b, product_a, product_b, client_a, client_b, provider_a):
    """
    Tenant A:
    - 2026-02-10 sale to Client A: 2 x Product A @ 1000 = 2000
    - 2026-02-10 sale to Client A: 1 x Product A @ 700, cancelled
    - 2026-02-11 sale to Client Z: 1 x Product A @ 500 + 1 x Gizmo @ 300 = 800
    - 2026-02-12 purchase: 5 x Product A @ 600
    Tenant B: one sale that must never show up.
    """
    gizmo = make_product(db_session, main_a, "GIZ-01", "Gizmo", stock=3, category="Misc")
    client_z = Client(owner_user_id=main_a.id, name="Client Z", context={})
    db_session.add(client_z)
    db_session.commit()

    transaction_service.create_sale(ctx_a, sale_payload(
        client_a.id, (product_a.id, 2, 1000), transaction_date="2026-02-10T10:00:00",
    ))
    cancelled = transaction_service.create_sale(ctx_a, sale_payload(
        client_a.id, (product_a.id, 1, 700), transaction_date="2026-02-10T11:00:00",
    ))
    transaction_service.cancel_transaction(ctx_a, cancelled["id"])
    transaction_service.create_sale(ctx_a, sale_payload(
        client_z.id, (product_a.id, 1, 500), (gizmo.id, 1, 300), transaction_date="2026-02-11T15:00:00",
    ))
    transaction_service.create_purchase(ctx_a, purchase_payload(
        provider_a.id, (product_a.id, 5, 600), transaction_date="2026-02-12T09:00:00",
    ))
    transaction_service.create_sale(ctx_b, sale_payload(
        client_b.id, (product_b.id, 4, 9999), transaction_date="2026-02-10T12:00:00",
    ))
    return {"gizmo_id": gizmo.id, "client_z_id": client_z.id}


class TestSalesReport:

    def test_total_excludes_cancelled_and_purchases(self, ctx_a, activity):
        report = reporting_service.sales_report(ctx_a)

        assert report["total_sales_cents"] == 2800
        assert report["transaction_count"] == 2
        assert report["rows"] == []

    def test_group_by_client(self, ctx_a, client_a, activity):
        report = reporting_service.sales_report(ctx_a, group_by="client")

        assert [(r["client_id"], r["total_sales_cents"]) for r in report["rows"]] == [
            (client_a.id, 2000),
            (activity["client_z_id"], 800),
        ]

    def test_group_by_product(self, ctx_a, product_a, activity):
        report = reporting_service.sales_report(ctx_a, group_by="product")

        assert report["rows"] == [
            {"product_id": product_a.id, "sku": "PROD-A-001", "name": "Product A",
             "quantity_sold": 3, "total_sales_cents": 2500},
            {"product_id": activity["gizmo_id"], "sku": "GIZ-01", "name": "Gizmo",
             "quantity_sold": 1, "total_sales_cents": 300},
        ]

    def test_group_by_day(self, ctx_a, activity):
        report = reporting_service.sales_report(ctx_a, group_by="day")

        assert report["rows"] == [
            {"day": "2026-02-10", "total_sales_cents": 2000, "transaction_count": 1},
            {"day": "2026-02-11", "total_sales_cents": 800, "transaction_count": 1},
        ]

    def test_date_range_is_inclusive_of_whole_days(self, ctx_a, activity):
        report = reporting_service.sales_report(ctx_a, start="2026-02-11", end="2026-02-11")

        assert report["total_sales_cents"] == 800
        assert report["start"] == "2026-02-11T00:00:00Z"

    def test_other_tenant_sees_only_its_sales(self, ctx_b, activity):
        report = reporting_service.sales_report(ctx_b)
        assert report["total_sales_cents"] == 4 * 9999

    def test_invalid_arguments(self, ctx_a, activity):
        with pytest.raises(ValidationError):
            reporting_service.sales_report(ctx_a, group_by="week")
        with pytest.raises(ValidationError):
            reporting_service.sales_report(ctx_a, start="2026-03-01", end="2026-02-01")
        with pytest.raises(ValidationError):
            reporting_service.sales_report(ctx_a, start="last week")


class TestInventoryReport:

    def test_stock_and_value(self, ctx_a, product_a, activity):
        report = reporting_service.inventory_report(ctx_a)

        rows = {r["sku"]: r for r in report["rows"]}
        assert [r["name"] for r in report["rows"]] == ["Gizmo", "Product A"]
        assert rows["PROD-A-001"]["current_stock"] == 12
        assert rows["PROD-A-001"]["stock_value_cents"] == 12_000
        assert rows["PROD-A-001"]["low_stock"] is False
        assert rows["GIZ-01"]["current_stock"] == 2
        assert rows["GIZ-01"]["low_stock"] is True
        assert report["total_units"] == 14
        assert report["total_value_cents"] == 14_000

    def test_filters(self, ctx_a, product_a, activity):
        by_category = reporting_service.inventory_report(ctx_a, category="HARDWARE")
        by_range = reporting_service.inventory_report(ctx_a, min_stock=0, max_stock=5)

        assert [r["product_id"] for r in by_category["rows"]] == [product_a.id]
        assert [r["product_id"] for r in by_range["rows"]] == [activity["gizmo_id"]]

    def test_inactive_hidden_unless_requested(self, ctx_a, activity):
        products_service.set_product_status(ctx_a, activity["gizmo_id"], is_active=False)

        default = reporting_service.inventory_report(ctx_a)
        everything = reporting_service.inventory_report(ctx_a, include_inactive=True)

        assert default["product_count"] == 1
        assert everything["product_count"] == 2

    def test_min_above_max_rejected(self, ctx_a):
        with pytest.raises(ValidationError):
            reporting_service.inventory_report(ctx_a, min_stock=10, max_stock=1)


class TestReportRoutes:

    def test_sales_report_route(self, client, db_session, activity):
        token = get_auth_token(client, "owner_a")

        response = client.get("/api/reports/sales?group_by=day", headers=auth_headers(token))

        assert response.status_code == 200
        assert response.json["transaction_count"] == 2
        assert len(response.json["rows"]) == 2

    def test_inventory_report_route(self, client, db_session, activity):
        token = get_auth_token(client, "owner_a")

        response = client.get(
            "/api/reports/inventory?category=misc&include_inactive=true", headers=auth_headers(token)
        )

        assert response.status_code == 200
        assert [r["sku"] for r in response.json["rows"]] == ["GIZ-01"]

    def test_bad_query_is_400(self, client, db_session, activity):
        token = get_auth_token(client, "owner_a")

        response = client.get("/api/reports/inventory?min_stock=abc", headers=auth_headers(token))

        assert response.status_code == 400
