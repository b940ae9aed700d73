"""Restart policy evaluated over the recent health check window."""

from __future__ import annotations

from typing import Collection, List, Mapping, Sequence

from .config import HealthCheckResult, HealthTier, RestartDecision

ANY_CHECK = "any"
DISK_CHECK = "free_disk_space"


def normalise_checks(values: Collection[str]) -> List[str]:
    """Strip, lower-case and de-duplicate configured check names."""

    cleaned = (str(v).strip().lower() for v in values)
    return list(dict.fromkeys(v for v in cleaned if v))


def consecutive_failures(results: Sequence[HealthCheckResult], check: str) -> int:
    """Count trailing failures of ``check``, oldest result first.

    The count resets on the first pass.  Results that do not include the
    check (e.g. it was not scheduled in that run) neither count nor reset.
    """

    count = 0
    for result in reversed(results):
        outcome = result.checks.get(check)
        if outcome is None:
            continue
        if outcome.passed:
            break
        count += 1
    return count


def consecutive_low_disk(samples: Sequence[int], threshold_mb: int) -> int:
    count = 0
    for sample in reversed(samples):
        if sample >= threshold_mb:
            break
        count += 1
    return count


def evaluate(
    router_id: str,
    results: Mapping[HealthTier, Sequence[HealthCheckResult]],
    disk_samples: Sequence[int],
    *,
    triggers: Collection[str],
    excluded: Collection[str],
    threshold: int,
    disk_threshold_mb: int,
) -> RestartDecision:
    """Decide whether ``router_id`` must be restarted.

    An empty trigger list means monitoring only.  ``any`` makes every check
    a trigger.  Excluded checks never count.  A free-disk sample below
    ``disk_threshold_mb`` counts as a failure of the ``free_disk_space``
    check and is subject to the same consecutive threshold.
    """

    trigger_set = set(normalise_checks(triggers))
    if not trigger_set:
        return RestartDecision(router_id, False)

    excluded_set = set(normalise_checks(excluded))
    match_any = ANY_CHECK in trigger_set
    required = max(1, int(threshold))
    reasons: List[str] = []

    for tier in HealthTier:
        history = results.get(tier) or ()
        if not history:
            continue
        for name in history[-1].checks:
            key = name.lower()
            if key in excluded_set or not (match_any or key in trigger_set):
                continue
            if consecutive_failures(history, name) >= required:
                reasons.append(name)

    if DISK_CHECK not in excluded_set and disk_samples:
        if consecutive_low_disk(disk_samples, disk_threshold_mb) >= required:
            reasons.append(DISK_CHECK)

    return RestartDecision(router_id, bool(reasons), tuple(reasons))
