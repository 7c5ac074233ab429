from __future__ import annotations

from typing import Iterable


STATUS_BUCKETS: dict[str, tuple[str, ...]] = {
    "Completed": ("Completed", "Internally Completed"),
    "Paused": ("Flagged", "Paused"),
    "Live": ("Live",),
    "Not Live": ("Not Live", "TBC"),
}

_BUCKET_BY_STATUS = {
    label.lower(): bucket
    for bucket, labels in STATUS_BUCKETS.items()
    for label in labels
}


def bucket_for_status(status: object) -> str | None:
    key = " ".join(str(status or "").split()).lower()
    return _BUCKET_BY_STATUS.get(key)


def summarize_statuses(statuses: Iterable[object]) -> dict[str, int]:
    # Unknown and blank statuses are not counted anywhere.
    summary = {bucket: 0 for bucket in STATUS_BUCKETS}
    for status in statuses:
        bucket = bucket_for_status(status)
        if bucket is not None:
            summary[bucket] += 1
    return summary
