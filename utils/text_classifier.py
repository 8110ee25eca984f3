"""Gemini-backed text classification for comments, project updates, and corruption reports.

Every public operation is best-effort: failures and missing configuration degrade to fixed
defaults so the rest of the platform keeps working without the AI dependency.
"""
from __future__ import annotations

import json
import logging
import math
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence

from google import genai

from utils.errors import ExternalServiceError

DEFAULT_SENTIMENT = "neutral"
SENTIMENT_LABELS = ("positive", "neutral", "negative")
PHRASE_INTENTS = ("concern", "praise")
MAX_TAGS_PER_TEXT = 3
DEFAULT_BATCH_SIZE = 10

DEFAULT_TOP_CONCERNS = [
    "Delayed timeline",
    "Poor material quality",
    "Lack of safety measures",
    "Environmental impact",
]

DEFAULT_TOP_PRAISES = [
    "Efficient work",
    "Good communication",
    "Quality construction",
    "Community involvement",
]

DEFAULT_REPORT_ANALYSIS = {
    "severity": 5,
    "summary": "AI analysis unavailable. This is a default summary.",
    "isValidReport": True,
    "tags": ["unanalyzed"],
}

FAILED_REPORT_ANALYSIS = {
    "severity": 5,
    "summary": "AI analysis encountered an error.",
    "isValidReport": True,
    "tags": ["analysis_error"],
}


def _strip_code_fences(raw_text: str) -> str:
    cleaned = (raw_text or "").strip()
    cleaned = re.sub(r"```(?:json)?", "", cleaned, flags=re.IGNORECASE)
    return cleaned.strip()


def _first_json_block(text: str) -> str | None:
    """Return the outermost array or object embedded in free-form text."""
    starts = [idx for idx in (text.find("["), text.find("{")) if idx != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "]" if text[start] == "[" else "}"
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start : end + 1]


def parse_json_payload(raw_text: str) -> Any:
    """Parse model output, tolerating code fences and leading/trailing prose."""
    cleaned = _strip_code_fences(raw_text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        block = _first_json_block(cleaned)
        if block is None:
            raise
        return json.loads(block)


def normalize_sentiment(value: Any) -> str:
    text = str(value or "").strip().lower()
    for label in SENTIMENT_LABELS:
        if label in text:
            return label
    return DEFAULT_SENTIMENT


def _coerce_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def sanitize_extracted_items(payload: Any) -> List[Dict]:
    """Keep only well-formed {name, quantity>0[, price>=0]} entries."""
    if isinstance(payload, dict):
        payload = payload.get("items", [])
    if not isinstance(payload, list):
        return []
    items: List[Dict] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        quantity = _coerce_number(entry.get("quantity"))
        if not isinstance(name, str) or not name.strip() or quantity is None or quantity <= 0:
            continue
        item = {"name": name.strip(), "quantity": quantity}
        price = _coerce_number(entry.get("price"))
        if price is not None and price >= 0:
            item["price"] = price
        items.append(item)
    return items


def sanitize_tags(payload: Any) -> List[Dict]:
    if not isinstance(payload, list):
        return []
    tags: List[Dict] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        tag = entry.get("tag")
        if not isinstance(tag, str) or not tag.strip():
            continue
        tags.append({"tag": tag.strip(), "sentiment": normalize_sentiment(entry.get("sentiment"))})
    return tags[:MAX_TAGS_PER_TEXT]


class TextClassifier:
    """Capability interface. The base implementation answers with the fallback values."""

    is_live = False

    def classify_sentiment(self, text: str) -> str:
        return DEFAULT_SENTIMENT

    def extract_items(self, text: str) -> List[Dict]:
        return []

    def extract_tags_with_sentiment(self, text: str) -> List[Dict]:
        return []

    def extract_short_phrase(self, text: str, intent: str) -> Optional[str]:
        return None

    def analyze_corruption_report(self, description: str, has_attachment: bool) -> Dict:
        return dict(DEFAULT_REPORT_ANALYSIS)


class NullTextClassifier(TextClassifier):
    """Selected when no GEMINI_API_KEY is configured."""


class GeminiTextClassifier(TextClassifier):
    is_live = True

    def __init__(self, api_key: str, model_name: str, logger: logging.Logger | None = None, client=None) -> None:
        self.model_name = model_name
        self.logger = logger or logging.getLogger(__name__)
        self._client = client or genai.Client(api_key=api_key)

    def _generate(self, prompt: str) -> str:
        try:
            response = self._client.models.generate_content(model=self.model_name, contents=prompt)
        except Exception as exc:  # pragma: no cover - relies on remote service
            raise ExternalServiceError("Gemini request failed") from exc
        raw_text = (getattr(response, "text", None) or "").strip()
        if not raw_text:
            raise ExternalServiceError("Gemini returned empty response")
        return raw_text

    def _generate_json(self, prompt: str) -> Any:
        raw_text = self._generate(prompt)
        try:
            return parse_json_payload(raw_text)
        except (json.JSONDecodeError, TypeError) as exc:
            raise ExternalServiceError("Gemini returned non-JSON output") from exc

    def classify_sentiment(self, text: str) -> str:
        prompt = (
            "Classify the sentiment of the following comment about a public infrastructure project. "
            'Answer with exactly one word: "positive", "neutral" or "negative".\n'
            f'Comment: """{text}"""'
        )
        try:
            return normalize_sentiment(self._generate(prompt))
        except ExternalServiceError:
            self.logger.warning("Sentiment classification failed", extra={"model": self.model_name})
            return DEFAULT_SENTIMENT

    def extract_items(self, text: str) -> List[Dict]:
        prompt = (
            "From the following construction progress update, extract the materials or equipment mentioned "
            "together with their quantities. If a unit price is stated include it as price, otherwise omit it.\n"
            'Respond with a JSON array of objects in this format: [{ "name": "string", "quantity": number, "price": number }]\n'
            "Only respond with the JSON array, no extra text. Return [] when no items are mentioned.\n"
            f'Update: """{text}"""'
        )
        try:
            return sanitize_extracted_items(self._generate_json(prompt))
        except ExternalServiceError:
            self.logger.warning("Item extraction failed", extra={"model": self.model_name})
            return []

    def extract_tags_with_sentiment(self, text: str) -> List[Dict]:
        prompt = (
            f"Extract up to {MAX_TAGS_PER_TEXT} relevant tags (keywords or topics) from the following comment and "
            'classify each as "positive", "neutral", or "negative" based on the sentiment in context.\n'
            'Respond with a JSON array of objects in this format: [{ "tag": "string", "sentiment": "positive|neutral|negative" }]\n'
            "Only respond with the JSON array, no extra text.\n"
            f'Comment: """{text}"""'
        )
        try:
            return sanitize_tags(self._generate_json(prompt))
        except ExternalServiceError:
            self.logger.warning("Tag extraction failed", extra={"model": self.model_name})
            return []

    def extract_short_phrase(self, text: str, intent: str) -> Optional[str]:
        if intent not in PHRASE_INTENTS:
            raise ValueError(f"Unsupported phrase intent: {intent}")
        subject = "main concern or complaint" if intent == "concern" else "main praise or compliment"
        prompt = (
            f"From the following comment, extract the {subject} (if any) as a short phrase. "
            "If none, return an empty array.\n"
            "Respond with a JSON array of short phrases, no extra text.\n"
            f'Comment: """{text}"""'
        )
        try:
            payload = self._generate_json(prompt)
        except ExternalServiceError:
            self.logger.warning("Phrase extraction failed", extra={"model": self.model_name, "intent": intent})
            return None
        if isinstance(payload, str):
            payload = [payload]
        if not isinstance(payload, list):
            return None
        for phrase in payload:
            if isinstance(phrase, str) and phrase.strip():
                return phrase.strip()
        return None

    def analyze_corruption_report(self, description: str, has_attachment: bool) -> Dict:
        evidence = "includes supporting documents or images" if has_attachment else "does not include supporting evidence"
        prompt = (
            "Analyze the following corruption report and provide:\n"
            "1. A severity score from 1-10 (where 10 is most severe)\n"
            "2. A brief summary of the allegation (max 100 words)\n"
            "3. Whether this appears to be a valid corruption report (true/false)\n"
            "4. Key tags related to the type of corruption\n"
            f"The report {evidence}.\n"
            f'Report: """{description}"""\n'
            'Format your response as a JSON object: { "severity": number, "summary": "string", '
            '"isValidReport": boolean, "tags": ["tag1", "tag2"] }\n'
            "Only respond with the JSON, no other text."
        )
        try:
            payload = self._generate_json(prompt)
        except ExternalServiceError:
            self.logger.warning("Corruption report analysis failed", extra={"model": self.model_name})
            return dict(FAILED_REPORT_ANALYSIS)
        if not isinstance(payload, dict):
            return dict(FAILED_REPORT_ANALYSIS)
        severity = _coerce_number(payload.get("severity")) or 5
        tags = payload.get("tags")
        return {
            "severity": min(10, max(1, int(round(severity)))),
            "summary": str(payload.get("summary") or "No summary provided"),
            "isValidReport": payload.get("isValidReport") is not False,
            "tags": [str(t) for t in tags] if isinstance(tags, list) else [],
        }


def build_text_classifier(config, logger: logging.Logger | None = None) -> TextClassifier:
    """Pick the live adapter when credentials are configured, the null adapter otherwise."""
    api_key = config.get("GEMINI_API_KEY") if hasattr(config, "get") else None
    if not api_key:
        if logger:
            logger.warning("GEMINI_API_KEY is not configured; AI text analysis will use fallback values")
        return NullTextClassifier()
    return GeminiTextClassifier(api_key, config.get("GEMINI_TEXT_MODEL", "gemini-2.5-flash"), logger=logger)


def get_text_classifier() -> TextClassifier:
    from flask import current_app

    classifier = current_app.extensions.get("text_classifier")
    if classifier is None:
        classifier = build_text_classifier(current_app.config, current_app.logger)
        current_app.extensions["text_classifier"] = classifier
    return classifier


def run_in_batches(
    func: Callable[[Any], Any],
    items: Sequence[Any],
    batch_size: int = DEFAULT_BATCH_SIZE,
    default: Any = None,
    logger: logging.Logger | None = None,
) -> List[Any]:
    """Apply ``func`` to every item with at most ``batch_size`` calls in flight.

    Results keep input order; an item whose call raises gets ``default`` instead.
    """
    batch_size = max(1, int(batch_size or DEFAULT_BATCH_SIZE))
    results: List[Any] = []
    if not items:
        return results
    with ThreadPoolExecutor(max_workers=batch_size) as executor:
        for start in range(0, len(items), batch_size):
            batch = items[start : start + batch_size]
            futures = [executor.submit(func, item) for item in batch]
            for future in futures:
                try:
                    results.append(future.result())
                except Exception:
                    (logger or logging.getLogger(__name__)).exception("Batched AI call failed; using default")
                    results.append(default)
    return results


def classify_sentiments(classifier: TextClassifier, texts: Sequence[str], batch_size: int = DEFAULT_BATCH_SIZE) -> List[str]:
    labels = run_in_batches(classifier.classify_sentiment, list(texts), batch_size, default=DEFAULT_SENTIMENT)
    return [label if label in SENTIMENT_LABELS else DEFAULT_SENTIMENT for label in labels]


def count_sentiments(labels: Sequence[str]) -> Dict[str, int]:
    counts = {label: 0 for label in SENTIMENT_LABELS}
    for label in labels:
        counts[label if label in counts else DEFAULT_SENTIMENT] += 1
    return counts


def extract_tags_batch(classifier: TextClassifier, texts: Sequence[str], batch_size: int = DEFAULT_BATCH_SIZE) -> List[List[Dict]]:
    results = run_in_batches(classifier.extract_tags_with_sentiment, list(texts), batch_size, default=[])
    return [result if isinstance(result, list) else [] for result in results]


def extract_phrases_batch(
    classifier: TextClassifier, texts: Sequence[str], intent: str, batch_size: int = DEFAULT_BATCH_SIZE
) -> List[Optional[str]]:
    return run_in_batches(lambda text: classifier.extract_short_phrase(text, intent), list(texts), batch_size, default=None)
