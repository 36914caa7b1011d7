"""End-to-end tests through the HTTP API against the in-memory store."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from conftest import auth_headers
from database.db import INVITATIONS


def create_project(client, admin, budget="100000"):
    response = client.post(
        "/projects",
        json={"name": "Kindaruma Heights", "budget": budget, "start_date": "2024-01-15"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 201, response.text
    return response.json()


def join(client, admin, member, project_id):
    invitation = client.post(f"/projects/{project_id}/invitations", headers=auth_headers(admin))
    assert invitation.status_code == 201, invitation.text
    response = client.post(f"/invitations/{invitation.json()['id']}/accept", headers=auth_headers(member))
    assert response.status_code == 200, response.text
    return response.json()


def add_expense(client, who, project_id, amount="1000", **extra):
    body = {"project_id": project_id, "title": "Cement", "amount": amount, "payment_status": "credit", **extra}
    response = client.post("/expenses", json=body, headers=auth_headers(who))
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requires_token(client):
    assert client.get("/projects").status_code == 401


def test_bad_token(client):
    response = client.get("/projects", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_me(client, labour):
    response = client.get("/auth/me", headers=auth_headers(labour))
    assert response.json()["user_id"] == labour.user_id
    assert response.json()["email_verified"] is True


def test_unverified_users_cannot_write(client, unverified):
    response = client.post("/projects", json={"name": "X", "budget": "10"}, headers=auth_headers(unverified))
    assert response.status_code == 403


def test_expense_approval_flow(client, admin, labour):
    project = create_project(client, admin)
    join(client, admin, labour, project["id"])

    expense = add_expense(client, labour, project["id"])
    assert expense["status"] == "pending"
    assert Decimal(expense["paid_amount"]) == Decimal("0")

    response = client.post(f"/expenses/{expense['id']}/approve", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    budget = client.get(f"/projects/{project['id']}/budget", headers=auth_headers(admin)).json()
    assert Decimal(budget["total_spent"]) == Decimal("1000")
    assert Decimal(budget["remaining_budget"]) == Decimal("99000")

    again = client.post(f"/expenses/{expense['id']}/approve", headers=auth_headers(admin))
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "already_processed"


def test_payments(client, admin):
    project = create_project(client, admin)
    expense = add_expense(client, admin, project["id"])

    first = client.post(f"/expenses/{expense['id']}/payments", json={"amount": "400"}, headers=auth_headers(admin))
    assert Decimal(first.json()["paid_amount"]) == Decimal("400")
    assert first.json()["payment_status"] == "partial"

    second = client.post(f"/expenses/{expense['id']}/payments", json={"amount": "700"}, headers=auth_headers(admin))
    assert Decimal(second.json()["paid_amount"]) == Decimal("1000")
    assert second.json()["payment_status"] == "paid"

    invalid = client.post(f"/expenses/{expense['id']}/payments", json={"amount": "0"}, headers=auth_headers(admin))
    assert invalid.status_code == 422


def test_reject_needs_reason(client, admin, labour):
    project = create_project(client, admin)
    join(client, admin, labour, project["id"])
    expense = add_expense(client, labour, project["id"])

    blank = client.post(f"/expenses/{expense['id']}/reject", json={"reason": "  "}, headers=auth_headers(admin))
    assert blank.status_code == 422
    assert blank.json()["detail"]["code"] == "invalid_input"

    rejected = client.post(f"/expenses/{expense['id']}/reject", json={"reason": "No receipt"}, headers=auth_headers(admin))
    assert rejected.json()["rejection_reason"] == "No receipt"
    assert rejected.json()["status_change"]["actor_id"] == admin.user_id


def test_delete_and_restore(client, admin):
    project = create_project(client, admin)
    expense = add_expense(client, admin, project["id"], amount="2500")

    deleted = client.delete(f"/expenses/{expense['id']}", headers=auth_headers(admin))
    assert deleted.json()["is_deleted"] is True
    assert client.delete(f"/expenses/{expense['id']}", headers=auth_headers(admin)).status_code == 409

    listed = client.get(f"/expenses/project/{project['id']}/deleted", headers=auth_headers(admin)).json()
    assert [e["id"] for e in listed] == [expense["id"]]

    client.post(f"/expenses/{expense['id']}/restore", headers=auth_headers(admin))
    refreshed = client.get(f"/projects/{project['id']}", headers=auth_headers(admin)).json()
    assert Decimal(refreshed["total_spent"]) == Decimal("2500")


def test_outsider_is_forbidden(client, admin, outsider):
    project = create_project(client, admin)
    response = client.get(f"/projects/{project['id']}", headers=auth_headers(outsider))
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "forbidden"


def test_unknown_project(client, admin):
    response = client.get("/projects/does-not-exist", headers=auth_headers(admin))
    assert response.status_code == 404


def test_expired_invitation_is_gone(client, store, admin, outsider):
    project = create_project(client, admin)
    invitation = client.post(f"/projects/{project['id']}/invitations", json={"expiry_days": 1},
                             headers=auth_headers(admin)).json()
    store.collections[INVITATIONS][invitation["id"]]["expires_at"] = datetime.now(timezone.utc) - timedelta(minutes=1)

    response = client.post(f"/invitations/{invitation['id']}/accept", headers=auth_headers(outsider))
    assert response.status_code == 410
    assert response.json()["detail"]["code"] == "invitation_expired"


def test_member_role_and_permissions(client, admin, director):
    project = create_project(client, admin)
    join(client, admin, director, project["id"])

    promoted = client.patch(f"/projects/{project['id']}/members/{director.user_id}/role",
                            json={"role": "director"}, headers=auth_headers(admin))
    assert promoted.status_code == 200

    granted = client.patch(f"/projects/{project['id']}/members/{director.user_id}/permissions",
                           json={"can_delete_expenses": True}, headers=auth_headers(admin))
    assert granted.json()["director_permissions"][director.user_id]["can_delete_expenses"] is True

    not_admin = client.patch(f"/projects/{project['id']}/members/{director.user_id}/role",
                             json={"role": "admin"}, headers=auth_headers(admin))
    assert not_admin.status_code == 422


def test_notifications(client, admin, labour):
    project = create_project(client, admin)
    join(client, admin, labour, project["id"])
    add_expense(client, labour, project["id"])

    [notification] = client.get("/notifications", headers=auth_headers(admin)).json()
    assert notification["type"] == "expense_created"

    assert client.patch(f"/notifications/{notification['id']}/read", headers=auth_headers(labour)).status_code == 403
    marked = client.patch(f"/notifications/{notification['id']}/read", headers=auth_headers(admin))
    assert marked.json()["read"] is True


def test_summary_and_monthly(client, admin):
    project = create_project(client, admin)
    today = datetime.now(timezone.utc).date().isoformat()
    add_expense(client, admin, project["id"], amount="300", category="Labor", expense_date=today)
    add_expense(client, admin, project["id"], amount="200", category="Materials", expense_date=today)

    summary = client.get(f"/expenses/project/{project['id']}/summary", headers=auth_headers(admin)).json()
    assert Decimal(summary["total_amount"]) == Decimal("500")
    assert summary["count_by_category"] == {"Labor": 1, "Materials": 1}

    monthly = client.get(f"/expenses/project/{project['id']}/monthly?months=1", headers=auth_headers(admin)).json()
    assert sum(Decimal(v) for v in monthly.values()) == Decimal("500")


def test_concurrent_writers_surface_as_503(client, store, admin):
    project = create_project(client, admin)
    store.conflicts = 100

    response = client.post(
        "/expenses",
        json={"project_id": project["id"], "title": "Steel", "amount": "10"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 503


def test_null_project_fields_are_ignored(client, admin):
    project = create_project(client, admin)

    response = client.put(f"/projects/{project['id']}", json={"name": None, "budget": None},
                          headers=auth_headers(admin))
    assert response.status_code == 200, response.text

    reloaded = client.get(f"/projects/{project['id']}", headers=auth_headers(admin))
    assert reloaded.status_code == 200
    assert reloaded.json()["name"] == "Kindaruma Heights"
    assert Decimal(reloaded.json()["budget"]) == Decimal("100000")


def test_member_expenses_and_totals(client, admin, labour):
    project = create_project(client, admin)
    join(client, admin, labour, project["id"])
    add_expense(client, admin, project["id"], amount="500")
    mine = add_expense(client, labour, project["id"], amount="250")
    client.post(f"/expenses/{mine['id']}/approve", headers=auth_headers(admin))

    listed = client.get(f"/expenses/project/{project['id']}", params={"created_by": labour.user_id},
                        headers=auth_headers(admin)).json()
    assert [e["id"] for e in listed] == [mine["id"]]

    summary = client.get(f"/expenses/project/{project['id']}/summary", headers=auth_headers(admin)).json()
    assert {k: Decimal(v) for k, v in summary["amount_by_member"].items()} == {
        admin.user_id: Decimal("500"),
        labour.user_id: Decimal("250"),
    }
