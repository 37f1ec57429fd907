"""
Review Category Classifier (Deterministic)
==========================================

Tags review text with service categories using a fixed keyword lexicon.
No ML, no I/O: the same text always yields the same tags.

Usage:
    categories = classify("They replaced our water heater in an afternoon")
    # ['water_heater']
"""

from typing import List, Tuple

from ..data.data_models import DEFAULT_CATEGORY


# =============================================================================
# SERVICE CATEGORY LEXICON
# =============================================================================
# Ordered: output tags follow this order. Keywords are matched as lowercase
# substrings of the review text. A review may receive several tags.

CATEGORY_LEXICON: List[Tuple[str, List[str]]] = [
    (
        "water_heater",
        [
            "water heater", "waterheater", "tankless", "hot water",
            "heater", "water tank", "anode rod", "pilot light",
        ],
    ),
    (
        "drain",
        [
            "drain", "clog", "sewer", "backed up", "back up", "snake",
            "hydro jet", "hydrojet", "camera inspection", "main line",
        ],
    ),
    (
        "leak",
        [
            "leak", "drip", "burst pipe", "pipe burst", "slab",
            "water damage", "flooded", "flooding",
        ],
    ),
    (
        "toilet",
        [
            "toilet", "commode", "running toilet", "flush", "wax ring",
        ],
    ),
    (
        "faucet",
        [
            "faucet", "sink", "fixture", "garbage disposal", "disposal",
            "shower valve", "shower head", "spigot",
        ],
    ),
    (
        "gas",
        [
            "gas line", "gas leak", "gas pipe", "smell gas", "gas meter",
            "natural gas", "gas",
        ],
    ),
    (
        "backflow",
        [
            "backflow", "back flow", "rpz", "prevention device",
        ],
    ),
    (
        "commercial",
        [
            "commercial", "business", "restaurant", "office", "property manager",
            "apartment complex", "our store",
        ],
    ),
    (
        "emergency",
        [
            "emergency", "same day", "same-day", "after hours", "middle of the night",
            "weekend", "holiday", "24/7",
        ],
    ),
]

CATEGORY_NAMES: List[str] = [name for name, _ in CATEGORY_LEXICON] + [DEFAULT_CATEGORY]


def classify(text: str) -> List[str]:
    """
    Multi-label keyword classification.

    Args:
        text: Review text (any case)

    Returns:
        Matching category names in lexicon order, or ["general"] when
        nothing matches.
    """
    lowered = (text or "").lower()
    matched = [
        category
        for category, keywords in CATEGORY_LEXICON
        if any(keyword in lowered for keyword in keywords)
    ]
    return matched or [DEFAULT_CATEGORY]
