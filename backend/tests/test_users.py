# Overview: Pytest coverage for profiles, company info, sub-users and account deletion.

import pytest

from backoffice.errors import (
    BusinessRuleViolation,
    ConflictError,
    NotFoundError,
    UnauthorizedOperationError,
)
from backoffice.models import (
    Client,
    LedgerEvent,
    Product,
    SecurityEvent,
    SessionToken,
    Transaction,
    TransactionItem,
    User,
)
from backoffice.services import session_service, transaction_service, user_service
from backoffice.services.auth_service import PasswordValidationError, verify_password

from conftest import PASSWORD, auth_headers, get_auth_token, sale_payload


NEW_PASSWORD = "N3w-Secret!"


class TestProfile:

    def test_get_current_user(self, db_session, ctx_sub_a, sub_a):
        me = user_service.get_current_user(ctx_sub_a)
        assert me["username"] == "clerk_a"
        assert me["is_main_user"] is False

    def test_update_profile(self, db_session, ctx_a):
        user_service.update_current_user(ctx_a, patch={"context": {"theme": "dark"}})
        updated = user_service.update_current_user(
            ctx_a, patch={"email": "Boss@Acme.com", "context": {"lang": "es"}}
        )

        assert updated["email"] == "boss@acme.com"
        assert updated["context"] == {"theme": "dark", "lang": "es"}

    def test_username_taken_case_insensitive(self, db_session, ctx_a, main_b):
        with pytest.raises(ConflictError):
            user_service.update_current_user(ctx_a, patch={"username": "OWNER_B"})

    def test_change_password(self, db_session, ctx_a, main_a):
        user_service.change_password(ctx_a, current_password=PASSWORD, new_password=NEW_PASSWORD)

        db_session.expire_all()
        assert verify_password(NEW_PASSWORD, db_session.get(User, main_a.id).password_hash)

    def test_change_password_wrong_current(self, db_session, ctx_a):
        with pytest.raises(BusinessRuleViolation) as exc_info:
            user_service.change_password(ctx_a, current_password="Wrong-pass1!", new_password=NEW_PASSWORD)

        assert exc_info.value.message == "Incorrect current password."
        assert db_session.query(SecurityEvent).filter_by(event_type="PASSWORD_CHANGE_FAILED").count() == 1

    def test_change_password_weak_new(self, db_session, ctx_a):
        with pytest.raises(PasswordValidationError):
            user_service.change_password(ctx_a, current_password=PASSWORD, new_password="short")


class TestCompanyInfo:

    def test_main_user_updates_company(self, db_session, ctx_a):
        updated = user_service.update_company_info(
            ctx_a, patch={"company_name": "Acme Holdings", "company_nit": "900-1"}
        )
        assert updated["company_name"] == "Acme Holdings"
        assert updated["company_nit"] == "900-1"

    def test_sub_user_cannot_update_company(self, db_session, ctx_sub_a):
        with pytest.raises(UnauthorizedOperationError):
            user_service.update_company_info(ctx_sub_a, patch={"company_name": "Mine"})


class TestSubUsers:

    def test_create_inherits_company(self, db_session, ctx_a, main_a):
        created = user_service.create_sub_user(
            ctx_a, username="cashier", email="Cashier@Acme.com", password=PASSWORD
        )

        assert created["parent_user_id"] == main_a.id
        assert created["company_name"] == "Acme Corp"
        assert created["email"] == "cashier@acme.com"

    def test_create_duplicate_username(self, db_session, ctx_a, main_b):
        with pytest.raises(ConflictError):
            user_service.create_sub_user(ctx_a, username="Owner_B", email="x@acme.com", password=PASSWORD)

    def test_sub_user_cannot_manage_sub_users(self, db_session, ctx_sub_a, sub_a):
        with pytest.raises(UnauthorizedOperationError):
            user_service.create_sub_user(ctx_sub_a, username="nested", email="n@acme.com", password=PASSWORD)
        with pytest.raises(UnauthorizedOperationError):
            user_service.list_sub_users(ctx_sub_a)
        with pytest.raises(UnauthorizedOperationError):
            user_service.delete_sub_user(ctx_sub_a, sub_a.id)

    def test_list_only_own_sub_users(self, db_session, ctx_a, ctx_b, sub_a):
        user_service.create_sub_user(ctx_b, username="clerk_b", email="clerk_b@beta.com", password=PASSWORD)

        listed = user_service.list_sub_users(ctx_a)

        assert [u["username"] for u in listed["items"]] == ["clerk_a"]

    def test_foreign_sub_user_is_not_found(self, db_session, ctx_b, sub_a):
        with pytest.raises(NotFoundError) as exc_info:
            user_service.get_sub_user(ctx_b, sub_a.id)

        assert exc_info.value.message == "User not found"
        event = db_session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").one()
        assert event.resource == f"user:{sub_a.id}"

    def test_main_user_is_not_a_sub_user(self, db_session, ctx_a, main_a):
        with pytest.raises(NotFoundError):
            user_service.get_sub_user(ctx_a, main_a.id)

    def test_deactivation_revokes_sessions(self, db_session, ctx_a, sub_a):
        session_service.create_session(sub_a)

        updated = user_service.set_sub_user_status(ctx_a, sub_a.id, is_active=False)

        assert updated["is_active"] is False
        sessions = db_session.query(SessionToken).filter_by(user_id=sub_a.id).all()
        assert sessions and all(s.is_revoked for s in sessions)

    def test_password_reset_by_main_user(self, db_session, ctx_a, sub_a):
        user_service.update_sub_user(ctx_a, sub_a.id, patch={"password": NEW_PASSWORD})

        db_session.expire_all()
        assert verify_password(NEW_PASSWORD, db_session.get(User, sub_a.id).password_hash)

    def test_delete_keeps_transactions(self, db_session, ctx_a, ctx_sub_a, sub_a, product_a, client_a):
        sale = transaction_service.create_sale(ctx_sub_a, sale_payload(client_a.id, (product_a.id, 1, 100)))
        assert sale["created_by_user_id"] == sub_a.id
        sub_id = sub_a.id

        user_service.delete_sub_user(ctx_a, sub_id)

        assert db_session.get(User, sub_id) is None
        kept = transaction_service.get_transaction(ctx_a, sale["id"])
        assert kept["created_by_user_id"] is None
        assert kept["created_by"] is None


class TestDeleteMainAccount:

    def test_sub_user_cannot_delete_account(self, db_session, ctx_sub_a):
        with pytest.raises(UnauthorizedOperationError):
            user_service.delete_main_account(ctx_sub_a)

    def test_removes_tenant_data_only(
        self, db_session, ctx_a, main_a, sub_a, product_a, client_a, product_b, client_b
    ):
        transaction_service.create_sale(ctx_a, sale_payload(client_a.id, (product_a.id, 2, 100)))
        main_id, sub_id, other_product_id = main_a.id, sub_a.id, product_b.id

        user_service.delete_main_account(ctx_a)

        assert db_session.get(User, main_id) is None
        assert db_session.get(User, sub_id) is None
        assert db_session.query(Product).filter_by(owner_user_id=main_id).count() == 0
        assert db_session.query(Client).filter_by(owner_user_id=main_id).count() == 0
        assert db_session.query(Transaction).filter_by(owner_user_id=main_id).count() == 0
        assert db_session.query(TransactionItem).count() == 0
        assert db_session.get(Product, other_product_id) is not None
        assert db_session.query(LedgerEvent).filter_by(
            owner_user_id=main_id, event_type="user.account_deleted"
        ).count() == 1


class TestUserRoutes:

    def test_me(self, client, db_session, main_a):
        token = get_auth_token(client, "owner_a")

        response = client.get("/api/users/me", headers=auth_headers(token))

        assert response.status_code == 200
        assert response.json["user"]["company_name"] == "Acme Corp"

    def test_sub_user_gets_403_on_main_only_routes(self, client, db_session, sub_a):
        token = get_auth_token(client, "clerk_a")

        company = client.patch("/api/users/me/company", json={"company_name": "X"}, headers=auth_headers(token))
        subs = client.get("/api/users/me/sub-users", headers=auth_headers(token))
        delete = client.delete("/api/users/me", headers=auth_headers(token))

        assert company.status_code == subs.status_code == delete.status_code == 403

    def test_create_sub_user_route(self, client, db_session, main_a):
        token = get_auth_token(client, "owner_a")

        response = client.post("/api/users/me/sub-users", json={
            "username": "seller",
            "email": "seller@acme.com",
            "password": PASSWORD,
        }, headers=auth_headers(token))

        assert response.status_code == 201
        assert get_auth_token(client, "seller") is not None

    def test_create_sub_user_missing_fields(self, client, db_session, main_a):
        token = get_auth_token(client, "owner_a")

        response = client.post(
            "/api/users/me/sub-users", json={"username": "seller"}, headers=auth_headers(token)
        )

        assert response.status_code == 400
        assert response.json["error"] == "Missing required fields: email, password"

    def test_deactivated_sub_user_token_stops_working(self, client, db_session, main_a, sub_a):
        owner = get_auth_token(client, "owner_a")
        clerk = get_auth_token(client, "clerk_a")

        response = client.patch(
            f"/api/users/me/sub-users/{sub_a.id}/status",
            json={"is_active": False},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        assert client.get("/api/users/me", headers=auth_headers(clerk)).status_code == 401

    def test_change_password_route(self, client, db_session, main_a):
        token = get_auth_token(client, "owner_a")

        missing = client.patch("/api/users/me/password", json={}, headers=auth_headers(token))
        wrong = client.patch("/api/users/me/password", json={
            "current_password": "Nope-nope1!",
            "new_password": NEW_PASSWORD,
        }, headers=auth_headers(token))

        assert missing.status_code == 400
        assert wrong.status_code == 422
