"""Normalise JSON and multipart request bodies into one dictionary."""
import json

from flask import request

from utils.errors import ValidationError

# Multipart forms carry structured fields as JSON-encoded strings.
STRUCTURED_FIELDS = {"location", "media", "purchasedItems", "utilisedItems"}


def request_payload() -> dict:
    if request.is_json:
        payload = request.get_json(silent=True)
        if payload is None:
            raise ValidationError("Malformed JSON body")
        if not isinstance(payload, dict):
            raise ValidationError("JSON body must be an object")
        return payload

    payload = request.form.to_dict()
    for field in STRUCTURED_FIELDS & payload.keys():
        raw = payload[field]
        if not raw:
            payload[field] = None
            continue
        try:
            payload[field] = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError(f"{field} must be valid JSON")
    return payload
