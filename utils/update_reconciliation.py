"""Project update workflow: validate item batches, reconcile them with the ledger, and record history."""
from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from flask import current_app, has_request_context, request
from sqlalchemy.orm.exc import StaleDataError

from extensions import db
from models import AuditLog, Project, generate_uuid
from utils.errors import (
    ConcurrentModification,
    ForbiddenError,
    InsufficientBudget,
    InvalidItemData,
    NotFoundError,
    ValidationError,
)
from utils.inventory_ledger import InventoryLedger
from utils.notifications import send_notification
from utils.text_classifier import TextClassifier, get_text_classifier, sanitize_extracted_items

UTILISE_KEYWORDS = ("used", "utilised", "utilized", "consumed", "ate", "drank", "spent", "deployed", "applied")
PURCHASE_KEYWORDS = ("bought", "purchased", "procured", "acquired", "ordered", "received", "got", "obtained")


def classify_update_intent(content: str) -> str:
    """Return "utilise", "purchase" or "unknown"; the first category with a keyword inside the text wins."""
    text = (content or "").lower()
    for intent, keywords in (("utilise", UTILISE_KEYWORDS), ("purchase", PURCHASE_KEYWORDS)):
        if any(keyword in text for keyword in keywords):
            return intent
    return "unknown"


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _shape_check(category: str, items, require_price: bool) -> List[Dict]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError(f"{category}Items must be a list")
    cleaned: List[Dict] = []
    for index, entry in enumerate(items):
        if not isinstance(entry, dict):
            raise InvalidItemData(category, index, entry, "entry must be an object")
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            raise InvalidItemData(category, index, entry, "name must be a non-empty string")
        quantity = entry.get("quantity")
        if not _is_number(quantity) or quantity <= 0:
            raise InvalidItemData(category, index, entry, "quantity must be a number greater than 0")
        item = {"name": name.strip(), "quantity": float(quantity)}
        if require_price:
            price = entry.get("price")
            if not _is_number(price) or price < 0:
                raise InvalidItemData(category, index, entry, "price must be a number of at least 0")
            item["price"] = float(price)
        cleaned.append(item)
    return cleaned


def validate_purchased_items(items) -> List[Dict]:
    return _shape_check("purchased", items, require_price=True)


def validate_utilised_items(items) -> List[Dict]:
    return _shape_check("utilised", items, require_price=False)


def _validate_media(media) -> List[str]:
    if media is None:
        return []
    if isinstance(media, str):
        media = [media]
    if not isinstance(media, list) or not all(isinstance(url, str) for url in media):
        raise ValidationError("media must be a list of URLs")
    return [url.strip() for url in media if url.strip()]


def extract_items_from_content(content: str, classifier: TextClassifier) -> Tuple[List[Dict], List[Dict]]:
    """Ask the classifier for items mentioned in free text and route them by keyword intent."""
    extracted = sanitize_extracted_items(classifier.extract_items(content))
    if not extracted:
        return [], []
    if classify_update_intent(content) == "purchase":
        purchased = [
            {"name": item["name"], "quantity": item["quantity"], "price": item.get("price", 0)} for item in extracted
        ]
        return purchased, []
    return [], [{"name": item["name"], "quantity": item["quantity"]} for item in extracted]


def _project_or_404(project_id: str) -> Project:
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project not found")
    return project


def _commit_versioned(action: str, project: Project) -> None:
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        current_app.logger.warning("Concurrent project write rejected", extra={"project_id": project.id, "action": action})
        raise ConcurrentModification("Project") from exc


def _audit(user, action: str, entity_id: str) -> None:
    db.session.add(
        AuditLog(
            user_id=user.id,
            action_type=action,
            entity_id=entity_id,
            ip_address=request.remote_addr if has_request_context() else None,
            user_agent=request.headers.get("User-Agent", "unknown") if has_request_context() else None,
        )
    )


def apply_project_update(
    project_id: str,
    user,
    content: str,
    media: Optional[Sequence[str]] = None,
    purchased_items=None,
    utilised_items=None,
    classifier: Optional[TextClassifier] = None,
) -> Dict:
    """Validate and commit one update together with its ledger effects.

    Checks run in a fixed order (purchased shape, utilised shape, budget, availability) and the
    ledger is only touched after all of them pass, so a failure leaves the project unchanged.
    """
    project = _project_or_404(project_id)
    if not project.is_stakeholder(user):
        raise ForbiddenError("Only the project's contractor or government can post updates")

    content = (content or "").strip() if isinstance(content, str) else ""
    if not content:
        raise ValidationError("Update content is required")
    media_urls = _validate_media(media)

    purchased = validate_purchased_items(purchased_items)
    utilised = validate_utilised_items(utilised_items)

    if not purchased and not utilised:
        purchased, utilised = extract_items_from_content(content, classifier or get_text_classifier())
        if purchased or utilised:
            current_app.logger.info(
                "Items extracted from update text",
                extra={"project_id": project.id, "purchased": len(purchased), "utilised": len(utilised)},
            )

    ledger = InventoryLedger.from_project(project)
    budget = float(project.budget or 0)
    expenditure = float(project.expenditure or 0)
    purchase_cost = sum(item["quantity"] * item["price"] for item in purchased)
    if expenditure + purchase_cost > budget:
        raise InsufficientBudget(budget, expenditure, purchase_cost)

    ledger.ensure_available(utilised)

    for item in purchased:
        ledger.record_purchase(item["name"], item["quantity"], item["price"])
    for item in utilised:
        ledger.record_utilisation(item["name"], item["quantity"])

    try:
        ledger.apply_to(project)
        db.session.flush()

        record = {
            "id": generate_uuid(),
            "content": content,
            "media": media_urls,
            "date": datetime.utcnow().isoformat(),
            "purchasedItems": purchased,
            "utilisedItems": utilised,
            "postedBy": user.id,
        }
        project.updates = list(project.updates or []) + [record]
        _audit(user, "PROJECT_UPDATE", project.id)
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrentModification("Project") from exc
    _commit_versioned("PROJECT_UPDATE", project)

    current_app.logger.info(
        "Project update recorded",
        extra={"project_id": project.id, "user_id": user.id, "expenditure": project.expenditure},
    )

    if user.id == project.contractor_id:
        send_notification(
            project.government_id,
            "PROJECT_UPDATE",
            f"New update posted on project '{project.title}'",
            sender_id=user.id,
            entity_id=project.id,
            entity_type="Project",
            metadata={"updateId": record["id"]},
        )
    return record


def _find_update(project: Project, update_id: str) -> Tuple[int, Dict]:
    for index, entry in enumerate(project.updates or []):
        if entry.get("id") == update_id:
            return index, entry
    raise NotFoundError("Update not found")


def edit_project_update(project_id: str, update_id: str, user, content=None, media=None) -> Dict:
    """Change the text or media of a committed update; item lists stay as recorded."""
    project = _project_or_404(project_id)
    if not project.is_stakeholder(user):
        raise ForbiddenError("Only the project's contractor or government can edit updates")
    index, entry = _find_update(project, update_id)

    edited = dict(entry)
    if content is not None:
        content = content.strip() if isinstance(content, str) else ""
        if not content:
            raise ValidationError("Update content is required")
        edited["content"] = content
    if media is not None:
        edited["media"] = _validate_media(media)
    edited["editedAt"] = datetime.utcnow().isoformat()

    updates = list(project.updates or [])
    updates[index] = edited
    project.updates = updates
    _commit_versioned("PROJECT_UPDATE_EDIT", project)
    return edited


def delete_project_update(project_id: str, update_id: str, user) -> None:
    """Remove an update from the history. Ledger effects already applied are kept."""
    project = _project_or_404(project_id)
    if not project.is_stakeholder(user):
        raise ForbiddenError("Only the project's contractor or government can delete updates")
    index, _ = _find_update(project, update_id)
    updates = list(project.updates or [])
    updates.pop(index)
    project.updates = updates
    _audit(user, "PROJECT_UPDATE_DELETE", project.id)
    _commit_versioned("PROJECT_UPDATE_DELETE", project)
