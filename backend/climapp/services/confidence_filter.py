"""
Climapp Backend: Confidence Filter
===================================

What:  Drops extracted items the model was not sure about.
How:   Pure, order-preserving: keeps items with confidence >= threshold.
       The threshold is CONFIDENCE_THRESHOLD (default 80); it is not
       overridable per request.

Confidence values straight from the model are coerced by
coerce_confidence(): missing or unparsable → 0, so such items never pass a
non-zero threshold.
"""

import math
from typing import Any, List, Sequence, Tuple

from climapp.schemas.extraction import ExtractedItem


def coerce_confidence(value: Any) -> int:
    """
    Model-supplied `confianca` → int in [0, 100].

    Accepts ints, floats and numeric strings ("95", "95%", "0.9" is read
    as 0.9, not 90). Fractions are floored so 79.6 stays below 80.
    Anything else is 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, str):
        cleaned = value.strip().rstrip("%").strip().replace(",", ".")
        try:
            value = float(cleaned)
        except ValueError:
            return 0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(0, min(100, math.floor(value)))
    return 0


def filter_by_confidence(
    items: Sequence[ExtractedItem], threshold: int
) -> Tuple[List[ExtractedItem], int]:
    """
    Keep items with confidence >= threshold, in their original order.

    Returns:
        (kept items, number discarded)
    """
    kept = [item for item in items if item.confidence >= threshold]
    return kept, len(items) - len(kept)
