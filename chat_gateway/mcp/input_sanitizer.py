"""Input normalization for the local arXiv tools.

Turns the free-form identifiers a model passes to ``arxiv_fetch`` into
bare arXiv ids, and bounds the search arguments.
"""
import re
from typing import Any

# Full URLs on arxiv.org or the ar5iv mirror
ARXIV_URL_PATTERNS = (
    re.compile(r'arxiv\.org/abs/(\d+\.\d+)'),
    re.compile(r'arxiv\.org/pdf/(\d+\.\d+)'),
    re.compile(r'ar5iv\.org/abs/(\d+\.\d+)'),
    re.compile(r'ar5iv\.org/html/(\d+\.\d+)'),
)
# Old format: category/YYMMNNN (e.g., hep-th/9901001)
ARXIV_OLD_ID_PATTERN = re.compile(r'([a-z-]+/\d+)', re.IGNORECASE)
# New format: YYMM.NNNNN with optional version (e.g., 2509.06917v1)
ARXIV_NEW_ID_PATTERN = re.compile(r'(\d{4}\.\d{4,5}(?:v\d+)?)')
VERSION_SUFFIX_PATTERN = re.compile(r'v\d+$')

DEFAULT_MAX_RESULTS = 5
MAX_RESULTS_LIMIT = 10
SORT_BY_VALUES = ("relevance", "lastUpdatedDate", "submittedDate")
SORT_ORDER_VALUES = ("ascending", "descending")


def parse_arxiv_id(url_or_id: str) -> str:
    """Extract an arXiv id from a URL or an id string.
    
    Handles formats like:
    - "https://arxiv.org/abs/2509.06917"
    - "https://ar5iv.org/html/2509.06917"
    - "hep-th/9901001"
    - "2509.06917" or "2509.06917v1"
    
    Anything else is returned stripped but otherwise unchanged.
    """
    url_or_id = url_or_id.strip()
    
    for pattern in ARXIV_URL_PATTERNS:
        match = pattern.search(url_or_id)
        if match:
            return match.group(1)
    
    match = ARXIV_OLD_ID_PATTERN.search(url_or_id)
    if match:
        return match.group(1)
    
    match = ARXIV_NEW_ID_PATTERN.search(url_or_id)
    if match:
        return match.group(1)
    
    return url_or_id


def strip_version(arxiv_id: str) -> str:
    """Drop a trailing version suffix (``v1``, ``v2``...)."""
    return VERSION_SUFFIX_PATTERN.sub('', arxiv_id)


def clamp_max_results(value: Any) -> int:
    """Coerce a requested result count into [1, 10]."""
    try:
        count = int(value) if value else DEFAULT_MAX_RESULTS
    except (TypeError, ValueError):
        count = DEFAULT_MAX_RESULTS
    return min(max(1, count), MAX_RESULTS_LIMIT)


def normalize_choice(value: Any, allowed: tuple, default: str) -> str:
    """Return ``value`` if it is one of ``allowed``, else ``default``."""
    return value if value in allowed else default
