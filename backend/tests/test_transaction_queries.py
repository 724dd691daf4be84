# Overview: Pytest coverage for transaction listing, filtering, sorting and pagination.

import pytest

from backoffice.services import transaction_service
from backoffice.services.transaction_service import TransactionFilter
from backoffice.validation import ValidationError

from conftest import purchase_payload, sale_payload


@pytest.fixture
def history(db_session, ctx_a, ctx_b, product_a, product_b, client_a, client_b, provider_a):
    """
    Tenant A: three sales and one purchase on different days; tenant B: one sale.
    Returns the created ids by name.
    """
    ids = {}
    ids["jan"] = transaction_service.create_sale(ctx_a, sale_payload(
        client_a.id, (product_a.id, 1, 1000),
        transaction_date="2026-01-10T09:00:00", reference_number="INV-Alpha-001",
    ))["id"]
    ids["feb_morning"] = transaction_service.create_sale(ctx_a, sale_payload(
        client_a.id, (product_a.id, 2, 1000),
        transaction_date="2026-02-15T08:00:00", reference_number="inv-beta-002",
    ))["id"]
    ids["feb_evening"] = transaction_service.create_sale(ctx_a, sale_payload(
        client_a.id, (product_a.id, 1, 500),
        transaction_date="2026-02-15T22:30:00", reference_number="50%_OFF",
    ))["id"]
    ids["purchase"] = transaction_service.create_purchase(ctx_a, purchase_payload(
        provider_a.id, (product_a.id, 10, 700),
        transaction_date="2026-03-01T12:00:00", reference_number="PO-0001",
    ))["id"]
    ids["other_tenant"] = transaction_service.create_sale(ctx_b, sale_payload(
        client_b.id, (product_b.id, 1, 999),
        transaction_date="2026-02-15T10:00:00", reference_number="INV-Alpha-999",
    ))["id"]
    transaction_service.cancel_transaction(ctx_a, ids["jan"])
    return ids


def _ids(result):
    return [item["id"] for item in result["items"]]


class TestListTransactions:

    def test_only_own_tenant_is_listed(self, ctx_a, history):
        result = transaction_service.list_transactions(ctx_a)

        assert result["pagination"]["total"] == 4
        assert history["other_tenant"] not in _ids(result)

    def test_default_sort_is_newest_first(self, ctx_a, history):
        result = transaction_service.list_transactions(ctx_a)
        assert _ids(result) == [history["purchase"], history["feb_evening"], history["feb_morning"], history["jan"]]

    def test_filter_by_type(self, ctx_a, history):
        result = transaction_service.list_transactions(ctx_a, TransactionFilter(transaction_type="PURCHASE"))
        assert _ids(result) == [history["purchase"]]

    def test_filter_by_status(self, ctx_a, history):
        result = transaction_service.list_transactions(ctx_a, TransactionFilter(status="CANCELLED"))
        assert _ids(result) == [history["jan"]]

    def test_filters_are_combined_with_and(self, ctx_a, client_a, history):
        filters = TransactionFilter(transaction_type="SALE", status="COMPLETED", client_id=client_a.id)
        result = transaction_service.list_transactions(ctx_a, filters)
        assert sorted(_ids(result)) == sorted([history["feb_morning"], history["feb_evening"]])

    def test_foreign_client_filter_matches_nothing(self, ctx_a, client_b, history):
        result = transaction_service.list_transactions(ctx_a, TransactionFilter(client_id=client_b.id))
        assert result["items"] == []
        assert result["pagination"]["total"] == 0

    def test_bare_date_to_covers_the_whole_day(self, ctx_a, history):
        filters = TransactionFilter.from_args({"date_from": "2026-02-15", "date_to": "2026-02-15"})
        result = transaction_service.list_transactions(ctx_a, filters)
        assert sorted(_ids(result)) == sorted([history["feb_morning"], history["feb_evening"]])

    def test_date_bounds_are_inclusive(self, ctx_a, history):
        filters = TransactionFilter.from_args({
            "date_from": "2026-02-15T22:30:00",
            "date_to": "2026-03-01T12:00:00",
        })
        result = transaction_service.list_transactions(ctx_a, filters)
        assert sorted(_ids(result)) == sorted([history["feb_evening"], history["purchase"]])

    def test_reference_is_case_insensitive_substring(self, ctx_a, history):
        result = transaction_service.list_transactions(ctx_a, TransactionFilter(reference_number="INV-"))
        assert sorted(_ids(result)) == sorted([history["jan"], history["feb_morning"]])

    def test_reference_wildcards_are_literal(self, ctx_a, history):
        result = transaction_service.list_transactions(ctx_a, TransactionFilter(reference_number="%_"))
        assert _ids(result) == [history["feb_evening"]]

    def test_sort_by_total_ascending(self, ctx_a, history):
        result = transaction_service.list_transactions(ctx_a, sort="total_amount_cents,asc")
        totals = [item["total_amount_cents"] for item in result["items"]]
        assert totals == sorted(totals)

    def test_invalid_sort_rejected(self, ctx_a, history):
        with pytest.raises(ValidationError):
            transaction_service.list_transactions(ctx_a, sort="owner_user_id,asc")
        with pytest.raises(ValidationError):
            transaction_service.list_transactions(ctx_a, sort="transaction_date,sideways")

    def test_pagination(self, ctx_a, history):
        first = transaction_service.list_transactions(ctx_a, page=1, per_page=3)
        second = transaction_service.list_transactions(ctx_a, page=2, per_page=3)

        assert first["count"] == 3
        assert first["pagination"]["total_pages"] == 2
        assert first["pagination"]["has_next"] is True
        assert second["count"] == 1
        assert second["pagination"]["has_prev"] is True
        assert set(_ids(first)).isdisjoint(_ids(second))

    def test_per_page_is_capped(self, app, ctx_a, history):
        result = transaction_service.list_transactions(ctx_a, per_page=10_000)
        assert result["pagination"]["per_page"] == app.config["MAX_PAGE_SIZE"]

    def test_summary_projection_has_no_items(self, ctx_a, history):
        result = transaction_service.list_transactions(ctx_a)
        assert all("items" not in item for item in result["items"])


class TestTransactionFilter:

    def test_from_args_parses_strings(self):
        filters = TransactionFilter.from_args({
            "type": "sale",
            "status": "completed",
            "client_id": "7",
            "reference": " INV ",
        })
        assert filters.transaction_type == "SALE"
        assert filters.status == "COMPLETED"
        assert filters.client_id == 7
        assert filters.reference_number == "INV"

    def test_blank_values_are_ignored(self):
        filters = TransactionFilter.from_args({"type": "", "status": "  ", "date_from": ""})
        assert filters.is_empty()

    @pytest.mark.parametrize("args", [
        {"type": "REFUND"},
        {"status": "VOID"},
        {"client_id": "abc"},
        {"date_from": "yesterday"},
    ])
    def test_invalid_values_rejected(self, args):
        with pytest.raises(ValidationError):
            TransactionFilter.from_args(args)
