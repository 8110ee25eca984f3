import json

import pytest

from conftest import PASSWORD
from models import AuditLog, Notification


@pytest.fixture
def contractor_headers(auth_headers, users):
    return auth_headers(users["contractor"])


@pytest.fixture
def government_headers(auth_headers, users):
    return auth_headers(users["government"])


@pytest.fixture
def public_headers(auth_headers, users):
    return auth_headers(users["public"])


def test_register_login_and_me(client):
    registered = client.post(
        "/auth/register",
        json={"name": "Rita Resident", "email": "Rita@Example.org", "password": PASSWORD},
    )
    assert registered.status_code == 201
    assert registered.get_json()["user"]["role"] == "PUBLIC"

    login = client.post("/auth/login", json={"email": "rita@example.org", "password": PASSWORD})
    assert login.status_code == 200
    token = login.get_json()["token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.get_json()["user"]["email"] == "rita@example.org"


def test_register_rejects_weak_password_and_duplicates(client, users):
    weak = client.post("/auth/register", json={"name": "Weak", "email": "weak@example.org", "password": "short"})
    assert weak.status_code == 400

    duplicate = client.post(
        "/auth/register", json={"name": "Again", "email": "pat.public@example.org", "password": PASSWORD}
    )
    assert duplicate.status_code == 409


def test_bad_credentials_and_missing_tokens_are_401(client, users):
    assert client.post("/auth/login", json={"email": "pat.public@example.org", "password": "Wrong123"}).status_code == 401

    missing = client.get("/auth/me")
    assert missing.status_code == 401
    assert missing.get_json() == {"success": False, "message": "Authentication required"}

    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


def test_wrong_role_is_forbidden_and_audited(client, app, users, public_headers):
    response = client.post("/projects", json={"title": "Park", "contractor": users["contractor"]}, headers=public_headers)

    assert response.status_code == 403
    assert response.get_json()["success"] is False
    with app.app_context():
        assert AuditLog.query.filter_by(user_id=users["public"], action_type="UNAUTHORIZED_ACCESS").count() == 1


def test_government_creates_project(client, users, government_headers):
    response = client.post(
        "/projects",
        json={
            "title": "Ward 3 footpaths",
            "budget": 2500,
            "contractor": users["contractor"],
            "location": {"lat": "12.9", "lng": 77.6, "place": "Ward 3"},
        },
        headers=government_headers,
    )

    assert response.status_code == 201
    project = response.get_json()["project"]
    assert project["contractor"]["id"] == users["contractor"]
    assert project["government"]["id"] == users["government"]
    assert project["location"] == {"lat": 12.9, "lng": 77.6, "place": "Ward 3"}
    assert project["expenditure"] == 0

    bad = client.post("/projects", json={"title": "X", "contractor": users["public"]}, headers=government_headers)
    assert bad.status_code == 400


def test_update_flow_through_the_api(client, project_id, contractor_headers):
    purchase = client.post(
        f"/projects/{project_id}/updates",
        json={"content": "Cement delivered", "purchasedItems": [{"name": "Cement", "quantity": 10, "price": 50}]},
        headers=contractor_headers,
    )
    assert purchase.status_code == 201
    assert purchase.get_json()["project"]["expenditure"] == 500

    ledger = client.get(f"/projects/{project_id}/inventory").get_json()
    assert ledger["inventory"] == [{"name": "Cement", "quantity": 10, "price": 50, "totalSpent": 500}]
    assert ledger["remainingBudget"] == 500

    over = client.post(
        f"/projects/{project_id}/updates",
        json={"content": "Pouring", "utilisedItems": [{"name": "cement", "quantity": 15}]},
        headers=contractor_headers,
    )
    assert over.status_code == 409
    body = over.get_json()
    assert body["message"].startswith("Insufficient quantity")
    assert body["details"] == {"item": "Cement", "requested": 15, "available": 10}

    assert client.get(f"/projects/{project_id}/inventory").get_json()["inventory"][0]["quantity"] == 10


def test_multipart_update_decodes_item_fields(client, project_id, contractor_headers):
    response = client.post(
        f"/projects/{project_id}/updates",
        data={"content": "Sand in", "purchasedItems": json.dumps([{"name": "Sand", "quantity": 4, "price": 25}])},
        headers=contractor_headers,
    )

    assert response.status_code == 201
    assert response.get_json()["update"]["purchasedItems"] == [{"name": "Sand", "quantity": 4, "price": 25}]


def test_invalid_item_data_is_a_400_with_position(client, project_id, contractor_headers):
    response = client.post(
        f"/projects/{project_id}/updates",
        json={"content": "Oops", "purchasedItems": [{"name": "Sand", "quantity": "lots", "price": 1}]},
        headers=contractor_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["details"]["category"] == "purchased"
    assert response.get_json()["details"]["index"] == 0


def test_public_user_cannot_post_updates(client, project_id, public_headers):
    response = client.post(f"/projects/{project_id}/updates", json={"content": "Hi"}, headers=public_headers)
    assert response.status_code == 403


def test_like_and_dislike_are_mutually_exclusive(client, users, project_id, public_headers):
    liked = client.post(f"/projects/{project_id}/like", headers=public_headers).get_json()
    assert liked["likes"] == [users["public"]]

    disliked = client.post(f"/projects/{project_id}/dislike", headers=public_headers).get_json()
    assert disliked["likes"] == []
    assert disliked["dislikes"] == [users["public"]]

    cleared = client.post(f"/projects/{project_id}/undislike", headers=public_headers).get_json()
    assert cleared["dislikes"] == []


def test_comment_notifies_contractor(client, users, project_id, public_headers, contractor_headers):
    posted = client.post(
        "/comments", json={"project": project_id, "content": "When will the drain be covered?"}, headers=public_headers
    )
    assert posted.status_code == 201
    comment_id = posted.get_json()["comment"]["id"]

    reply = client.post(
        "/comments",
        json={"project": project_id, "content": "Next week", "parentComment": comment_id},
        headers=contractor_headers,
    )
    assert reply.status_code == 201

    inbox = client.get("/notifications", headers=contractor_headers).get_json()
    assert inbox["unread"] == 1
    notification = inbox["notifications"][0]
    assert notification["senderId"] == users["public"]

    read = client.post(f"/notifications/{notification['id']}/read", headers=contractor_headers)
    assert read.get_json()["notification"]["isRead"] is True

    thread = client.get(f"/comments/project/{project_id}").get_json()["comments"]
    assert [c["content"] for c in thread] == ["Next week", "When will the drain be covered?"]


def test_anonymous_report_reaches_government(client, app, users, project_id, government_headers, public_headers):
    filed = client.post("/reports", json={"project": project_id, "description": "Materials sold off site"})
    assert filed.status_code == 201
    report = filed.get_json()["report"]
    assert report["reportedBy"] == {"user": None, "isAnonymous": True}
    assert report["status"] == "pending"

    listed = client.get(f"/reports/project/{project_id}", headers=government_headers)
    assert len(listed.get_json()["reports"]) == 1
    assert client.get(f"/reports/project/{project_id}", headers=public_headers).status_code == 403

    with app.app_context():
        assert Notification.query.filter_by(recipient_id=users["government"], type="CORRUPTION_REPORT").count() == 1


def test_government_dashboard(client, users, project_id, auth_headers, government_headers):
    dashboard = client.get("/analysis/dashboard", headers=government_headers)
    assert dashboard.status_code == 200
    body = dashboard.get_json()
    assert body["aggregateAnalysis"]["projectCount"]["total"] == 1
    assert [project["id"] for project in body["projects"]] == [project_id]

    assert client.get("/analysis/dashboard", headers=auth_headers(users["other_government"])).status_code == 404
    assert client.get("/analysis/dashboard", headers=auth_headers(users["contractor"])).status_code == 403


def test_project_analysis_is_stakeholder_only(client, project_id, contractor_headers, public_headers):
    allowed = client.get(f"/analysis/project/{project_id}", headers=contractor_headers)
    assert allowed.status_code == 200
    assert allowed.get_json()["analysis"]["project"] == project_id

    assert client.get(f"/analysis/project/{project_id}", headers=public_headers).status_code == 403
    assert client.get("/analysis/project/missing", headers=contractor_headers).status_code == 404


def test_health_and_unknown_routes(client, app):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.get_json() == {"success": True, "database": "ok", "textClassifier": "fallback"}

    missing = client.get("/no-such-route")
    assert missing.status_code == 404
    assert missing.get_json()["success"] is False


def test_admin_deletes_project(client, users, project_id, auth_headers, government_headers):
    assert client.delete(f"/projects/{project_id}", headers=government_headers).status_code == 403
    assert client.delete(f"/projects/{project_id}", headers=auth_headers(users["admin"])).status_code == 200
    assert client.get(f"/projects/{project_id}").status_code == 404


def test_project_patch_guards_budget_and_marks_completion(client, project_id, contractor_headers, government_headers):
    client.post(
        f"/projects/{project_id}/updates",
        json={"content": "Steel in", "purchasedItems": [{"name": "Steel", "quantity": 2, "price": 300}]},
        headers=contractor_headers,
    )

    too_low = client.patch(f"/projects/{project_id}", json={"budget": 500}, headers=government_headers)
    assert too_low.status_code == 400

    done = client.patch(f"/projects/{project_id}", json={"completed": True, "budget": 600}, headers=government_headers)
    assert done.status_code == 200
    assert done.get_json()["project"]["completed"] is True
    assert done.get_json()["project"]["budget"] == 600


def test_report_status_change_notifies_signed_in_reporter(
    client, project_id, public_headers, government_headers, contractor_headers
):
    filed = client.post(
        "/reports", json={"project": project_id, "description": "Cement diverted"}, headers=public_headers
    ).get_json()["report"]
    assert filed["reportedBy"]["isAnonymous"] is False

    bad = client.patch(f"/reports/{filed['id']}/status", json={"status": "closed"}, headers=government_headers)
    assert bad.status_code == 400

    changed = client.patch(
        f"/reports/{filed['id']}/status", json={"status": "Investigating"}, headers=government_headers
    )
    assert changed.get_json()["report"]["status"] == "investigating"

    inbox = client.get("/notifications", headers=public_headers).get_json()["notifications"]
    assert [n["type"] for n in inbox] == ["REPORT_STATUS"]
    assert len(client.get("/reports/mine", headers=contractor_headers).get_json()["reports"]) == 1


def test_non_finite_numbers_are_client_errors(client, users, project_id, contractor_headers, government_headers):
    created = client.post(
        "/projects", json={"title": "Ward 9", "budget": "nan", "contractor": users["contractor"]}, headers=government_headers
    )
    assert created.status_code == 400

    update = client.post(
        f"/projects/{project_id}/updates",
        json={"content": "Sand in", "purchasedItems": [{"name": "Sand", "quantity": float("inf"), "price": 0}]},
        headers=contractor_headers,
    )
    assert update.status_code == 400
    assert update.get_json()["details"]["category"] == "purchased"
    assert client.get(f"/projects/{project_id}/inventory").get_json()["expenditure"] == 0
