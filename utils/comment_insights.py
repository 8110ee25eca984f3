"""Comment-level rollups shared by the project and aggregate analysis generators."""
from __future__ import annotations

from collections import Counter
from typing import Dict, List, Sequence

from utils.text_classifier import (
    DEFAULT_TOP_CONCERNS,
    DEFAULT_TOP_PRAISES,
    SENTIMENT_LABELS,
    TextClassifier,
    classify_sentiments,
    count_sentiments,
    extract_phrases_batch,
    extract_tags_batch,
)

TOP_PHRASE_LIMIT = 5


def sentiment_counts(classifier: TextClassifier, texts: Sequence[str], batch_size: int) -> Dict[str, int]:
    if not texts:
        return count_sentiments([])
    return count_sentiments(classify_sentiments(classifier, texts, batch_size))


def sentiment_distribution(counts: Dict[str, int]) -> Dict[str, float]:
    total = sum(counts.values())
    return {label: (counts.get(label, 0) / total * 100) if total else 0 for label in SENTIMENT_LABELS}


def aggregate_tags(tag_lists: Sequence[Sequence[Dict]]) -> List[Dict]:
    """Merge per-comment tags into [{tag, count, sentiment}] sorted by count.

    Each tag takes the sentiment seen most often for it; ties go to positive, then neutral.
    """
    counts: Dict[str, int] = {}
    sentiments: Dict[str, Dict[str, int]] = {}
    for tags in tag_lists:
        for entry in tags or []:
            if not isinstance(entry, dict) or not entry.get("tag") or not entry.get("sentiment"):
                continue
            key = str(entry["tag"]).strip().lower()
            if not key:
                continue
            counts[key] = counts.get(key, 0) + 1
            bucket = sentiments.setdefault(key, {label: 0 for label in SENTIMENT_LABELS})
            if entry["sentiment"] in bucket:
                bucket[entry["sentiment"]] += 1

    merged = []
    for tag, count in counts.items():
        bucket = sentiments[tag]
        majority = max(SENTIMENT_LABELS, key=lambda label: (bucket[label], -SENTIMENT_LABELS.index(label)))
        merged.append({"tag": tag, "count": count, "sentiment": majority})
    return sorted(merged, key=lambda item: item["count"], reverse=True)


def comment_tags(classifier: TextClassifier, texts: Sequence[str], batch_size: int) -> List[Dict]:
    if not texts:
        return []
    return aggregate_tags(extract_tags_batch(classifier, texts, batch_size))


def top_phrases(classifier: TextClassifier, texts: Sequence[str], intent: str, batch_size: int) -> List[str]:
    texts = [text for text in texts if text]
    if not texts:
        return []
    if not classifier.is_live:
        return list(DEFAULT_TOP_CONCERNS if intent == "concern" else DEFAULT_TOP_PRAISES)

    frequency: Counter = Counter()
    for phrase in extract_phrases_batch(classifier, texts, intent, batch_size):
        key = (phrase or "").strip().lower()
        if key:
            frequency[key] += 1
    return [phrase for phrase, _ in frequency.most_common(TOP_PHRASE_LIMIT)]


def top_tags_for(tags: Sequence[Dict], sentiment: str, limit: int = 5) -> List[Dict]:
    return [{"tag": t["tag"], "count": t["count"]} for t in tags if t["sentiment"] == sentiment][:limit]
