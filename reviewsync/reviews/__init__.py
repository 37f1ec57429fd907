"""
Reviewsync Review Processing
============================

Deterministic, I/O-free processing of canonical reviews.

Modules:
    review_categories : keyword lexicon tagging (water_heater, drain, ...)
    review_merger     : rating floor, dedup and source-priority upgrades
"""

from .review_categories import classify, CATEGORY_LEXICON, CATEGORY_NAMES
from .review_merger import ReviewMerger, MergePlan, DEFAULT_SOURCE_PRIORITY, DEFAULT_RATING_FLOOR
