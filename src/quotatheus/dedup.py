from typing import Iterable

from quotatheus.models import UsageEvent


def dedupe(events: "Iterable[UsageEvent]") -> "list[UsageEvent]":
    """
    collapses events sharing the same dedup_key to exactly one.

    The same message shows up verbatim in every log file that covers
    it, so the last copy seen is kept. Output follows the order in
    which each key first appeared, not timestamp order.
    """
    # dict keeps first-insertion order while later assignments
    # replace the stored value
    unique: "dict[str, UsageEvent]" = {}
    for event in events:
        unique[event.dedup_key] = event

    return list(unique.values())
