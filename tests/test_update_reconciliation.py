import pytest
from sqlalchemy import text

from extensions import db
from models import AuditLog, Notification, Project, User
from utils.errors import (
    ConcurrentModification,
    ForbiddenError,
    InsufficientBudget,
    InsufficientQuantity,
    InvalidItemData,
    ItemNotInInventory,
    ValidationError,
)
from utils.update_reconciliation import (
    apply_project_update,
    classify_update_intent,
    delete_project_update,
    edit_project_update,
)


def _user(user_id):
    return db.session.get(User, user_id)


def _fresh_project(project_id):
    db.session.expire_all()
    return db.session.get(Project, project_id)


def test_purchase_scenario_updates_ledger_and_history(ctx, users, project_id):
    record = apply_project_update(
        project_id,
        _user(users["contractor"]),
        "Delivered cement for the culvert",
        purchased_items=[{"name": "Cement", "quantity": 10, "price": 50}],
    )

    project = _fresh_project(project_id)
    assert project.expenditure == 500
    assert project.inventory == [{"name": "Cement", "quantity": 10, "price": 50, "totalSpent": 500}]
    assert project.expenditure == sum(entry["totalSpent"] for entry in project.inventory)
    assert [u["id"] for u in project.updates] == [record["id"]]
    assert record["purchasedItems"] == [{"name": "Cement", "quantity": 10, "price": 50}]
    assert record["utilisedItems"] == []


def test_over_utilisation_fails_and_leaves_inventory_unchanged(ctx, users, project_id):
    contractor = _user(users["contractor"])
    apply_project_update(project_id, contractor, "Cement delivered", purchased_items=[{"name": "Cement", "quantity": 10, "price": 50}])

    with pytest.raises(InsufficientQuantity) as excinfo:
        apply_project_update(project_id, contractor, "Pouring the base", utilised_items=[{"name": "cement", "quantity": 15}])

    assert excinfo.value.requested == 15
    assert excinfo.value.available == 10
    assert "Cement" in excinfo.value.message
    db.session.rollback()
    project = _fresh_project(project_id)
    assert project.inventory[0]["quantity"] == 10
    assert len(project.updates) == 1


def test_purchase_over_budget_is_rejected_atomically(ctx, users, project_id):
    with pytest.raises(InsufficientBudget):
        apply_project_update(
            project_id,
            _user(users["contractor"]),
            "Ordered steel",
            purchased_items=[{"name": "Steel", "quantity": 3, "price": 400}],
        )

    db.session.rollback()
    project = _fresh_project(project_id)
    assert project.expenditure == 0
    assert project.inventory == []
    assert project.updates == []


def test_purchase_exactly_consuming_budget_is_allowed(ctx, users, project_id):
    apply_project_update(
        project_id, _user(users["contractor"]), "Bulk order", purchased_items=[{"name": "Gravel", "quantity": 20, "price": 50}]
    )
    assert _fresh_project(project_id).expenditure == 1000


def test_failed_availability_check_deducts_nothing(ctx, users, project_id):
    contractor = _user(users["contractor"])
    apply_project_update(project_id, contractor, "Stocked up", purchased_items=[{"name": "Cement", "quantity": 10, "price": 10}])

    with pytest.raises(ItemNotInInventory):
        apply_project_update(
            project_id,
            contractor,
            "Laying pipe",
            utilised_items=[{"name": "Cement", "quantity": 5}, {"name": "Pipe", "quantity": 1}],
        )

    db.session.rollback()
    project = _fresh_project(project_id)
    assert project.inventory[0]["quantity"] == 10
    assert project.used_items == []


@pytest.mark.parametrize(
    "entry, reason",
    [
        ({"quantity": 1, "price": 1}, "name"),
        ({"name": 42, "quantity": 1, "price": 1}, "name"),
        ({"name": "Sand", "quantity": 0, "price": 1}, "quantity"),
        ({"name": "Sand", "quantity": True, "price": 1}, "quantity"),
        ({"name": "Sand", "quantity": 2, "price": -1}, "price"),
    ],
)
def test_invalid_purchased_entry_is_named(ctx, users, project_id, entry, reason):
    with pytest.raises(InvalidItemData) as excinfo:
        apply_project_update(
            project_id,
            _user(users["contractor"]),
            "Materials",
            purchased_items=[{"name": "Cement", "quantity": 1, "price": 1}, entry],
        )
    assert excinfo.value.category == "purchased"
    assert excinfo.value.index == 1
    assert reason in excinfo.value.message


def test_purchased_shape_is_checked_before_utilised_shape(ctx, users, project_id):
    with pytest.raises(InvalidItemData) as excinfo:
        apply_project_update(
            project_id,
            _user(users["contractor"]),
            "Mixed",
            purchased_items=[{"name": "Sand", "quantity": -1, "price": 1}],
            utilised_items=[{"name": "", "quantity": 1}],
        )
    assert excinfo.value.category == "purchased"


def test_utilised_shape_is_checked_before_budget(ctx, users, project_id):
    with pytest.raises(InvalidItemData) as excinfo:
        apply_project_update(
            project_id,
            _user(users["contractor"]),
            "Mixed",
            purchased_items=[{"name": "Sand", "quantity": 100, "price": 100}],
            utilised_items=[{"name": "Sand", "quantity": 0}],
        )
    assert excinfo.value.category == "utilised"


def test_budget_is_checked_before_availability(ctx, users, project_id):
    with pytest.raises(InsufficientBudget):
        apply_project_update(
            project_id,
            _user(users["contractor"]),
            "Mixed",
            purchased_items=[{"name": "Sand", "quantity": 100, "price": 100}],
            utilised_items=[{"name": "Rebar", "quantity": 1}],
        )


def test_empty_content_is_rejected(ctx, users, project_id):
    with pytest.raises(ValidationError):
        apply_project_update(project_id, _user(users["contractor"]), "   ")


def test_only_stakeholders_may_post(ctx, users, project_id):
    with pytest.raises(ForbiddenError):
        apply_project_update(project_id, _user(users["public"]), "Looks good")


def test_classify_update_intent_matches_keywords_inside_words():
    assert classify_update_intent("We bought 20 bags") == "purchase"
    assert classify_update_intent("Crew USED the mixer") == "utilise"
    assert classify_update_intent("Received and used the pipes") == "utilise"
    assert classify_update_intent("Materials bought for the site") == "utilise"
    assert classify_update_intent("Crew inspection done") == "unknown"


def test_extracted_items_route_to_purchases_with_zero_price(ctx, users, project_id, install_classifier):
    install_classifier(items=[{"name": "Cement", "quantity": 20}])
    record = apply_project_update(project_id, _user(users["contractor"]), "We purchased 20 bags of cement")

    assert record["purchasedItems"] == [{"name": "Cement", "quantity": 20, "price": 0}]
    project = _fresh_project(project_id)
    assert project.inventory[0]["quantity"] == 20
    assert project.expenditure == 0


def test_extracted_items_without_keywords_are_utilised(ctx, users, project_id, install_classifier):
    contractor = _user(users["contractor"])
    apply_project_update(project_id, contractor, "Stock", purchased_items=[{"name": "Cement", "quantity": 10, "price": 5}])
    install_classifier(items=[{"name": "cement", "quantity": 4}, {"name": "", "quantity": 3}])

    record = apply_project_update(project_id, contractor, "Foundation poured with 4 bags of cement")

    assert record["utilisedItems"] == [{"name": "cement", "quantity": 4}]
    project = _fresh_project(project_id)
    assert project.inventory[0]["quantity"] == 6
    assert project.used_items == [{"name": "Cement", "quantity": 4}]


def test_no_items_and_null_classifier_records_plain_update(ctx, users, project_id):
    record = apply_project_update(project_id, _user(users["government"]), "Site inspection completed")
    assert record["purchasedItems"] == [] and record["utilisedItems"] == []


def test_contractor_update_notifies_government_and_is_audited(ctx, users, project_id):
    apply_project_update(project_id, _user(users["contractor"]), "Week one progress")

    notification = Notification.query.filter_by(recipient_id=users["government"]).one()
    assert notification.type == "PROJECT_UPDATE"
    assert notification.entity_id == project_id
    assert AuditLog.query.filter_by(action_type="PROJECT_UPDATE", entity_id=project_id).count() == 1


def test_government_update_does_not_notify_itself(ctx, users, project_id):
    apply_project_update(project_id, _user(users["government"]), "Budget review held")
    assert Notification.query.count() == 0


def test_edit_changes_text_only_and_delete_keeps_ledger(ctx, users, project_id):
    contractor = _user(users["contractor"])
    record = apply_project_update(
        project_id, contractor, "Cement in", purchased_items=[{"name": "Cement", "quantity": 2, "price": 100}]
    )

    edited = edit_project_update(project_id, record["id"], contractor, content="Cement delivered to site", media=["/files/a.png"])
    assert edited["content"] == "Cement delivered to site"
    assert edited["media"] == ["/files/a.png"]
    assert edited["purchasedItems"] == record["purchasedItems"]

    delete_project_update(project_id, record["id"], contractor)
    project = _fresh_project(project_id)
    assert project.updates == []
    assert project.expenditure == 200
    assert project.inventory[0]["quantity"] == 2


def test_concurrent_write_is_reported_as_conflict(ctx, users, project_id):
    contractor = _user(users["contractor"])
    # The session must keep holding version 1 while the row moves on underneath it.
    stale = db.session.get(Project, project_id)
    db.session.execute(text("UPDATE projects SET version = version + 1 WHERE id = :id"), {"id": project_id})

    with pytest.raises(ConcurrentModification):
        apply_project_update(
            project_id, contractor, "Racing update", purchased_items=[{"name": "Cement", "quantity": 1, "price": 1}]
        )
    assert stale.id == project_id


@pytest.mark.parametrize("quantity", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_utilised_quantity_is_rejected(ctx, users, project_id, quantity):
    contractor = _user(users["contractor"])
    apply_project_update(project_id, contractor, "Stock", purchased_items=[{"name": "Cement", "quantity": 10, "price": 50}])

    with pytest.raises(InvalidItemData) as excinfo:
        apply_project_update(project_id, contractor, "Pouring", utilised_items=[{"name": "Cement", "quantity": quantity}])

    assert excinfo.value.category == "utilised"
    db.session.rollback()
    project = _fresh_project(project_id)
    assert project.inventory[0]["quantity"] == 10
    assert project.used_items == []


@pytest.mark.parametrize(
    "entry",
    [
        {"name": "Sand", "quantity": float("inf"), "price": 0},
        {"name": "Sand", "quantity": 1, "price": float("nan")},
    ],
)
def test_non_finite_purchase_is_rejected_before_the_ledger(ctx, users, project_id, entry):
    with pytest.raises(InvalidItemData) as excinfo:
        apply_project_update(project_id, _user(users["contractor"]), "Sand order", purchased_items=[entry])

    assert excinfo.value.category == "purchased"
    db.session.rollback()
    assert _fresh_project(project_id).expenditure == 0
