from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Mapping

from abassign.namespace import Namespace

DEFAULT_KEY = "default"


def preview_assignment_distribution(
    namespace_factory: Callable[[Mapping[str, Any]], Namespace],
    sample_inputs: Iterable[Mapping[str, Any]],
) -> Dict[str, Any]:
    """Preview how sample units spread across a namespace's experiments.

    A fresh namespace is built per unit, as a request handler would. Only
    the experiment is resolved; no parameter is read, so nothing is exposure
    logged.
    """
    distribution: Dict[str, int] = {}
    total = 0
    for inputs in sample_inputs:
        namespace = namespace_factory(inputs)
        key = namespace.experiment_name or DEFAULT_KEY
        distribution[key] = distribution.get(key, 0) + 1
        total += 1

    default_count = distribution.get(DEFAULT_KEY, 0)
    return {
        "total_units": total,
        "assignment_distribution": distribution,
        "default_count": default_count,
        "assignment_rate": ((total - default_count) / total * 100) if total else None,
    }


def expected_proportions(namespace: Namespace) -> Dict[str, float]:
    """Share of the segment space per experiment, plus the unallocated share under DEFAULT_KEY.

    Eligibility filters are not taken into account: units an experiment
    declines end up in the default bucket.
    """
    summary = namespace.allocation_summary()
    num_segments = summary["num_segments"]
    proportions = {name: count / num_segments for name, count in summary["experiment_segments"].items()}
    proportions[DEFAULT_KEY] = summary["available_segments"] / num_segments
    return proportions
