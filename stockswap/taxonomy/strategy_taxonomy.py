"""
Strategy and provenance vocabulary.

Two vocabularies meet here:
  - ``StrategyTag`` — our internal risk-profile label.
  - Upstream strategy names — what the portfolio-simulation API calls them.

``to_upstream_strategy()`` / ``from_upstream_strategy()`` are the ONLY place
the two are translated. Every component that talks to the portfolio API goes
through them; no call site keeps its own mapping table.

This module has NO imports from any other ``stockswap`` package.
"""

from enum import StrEnum
from typing import Optional


class StrategyTag(StrEnum):
    """Internal risk profile of an "invest instead" portfolio."""

    CONSERVATIVE = "conservative"
    """Bond-heavy allocation; lowest projected growth."""

    BALANCED = "balanced"
    """Mixed allocation; the default when nothing else is known."""

    AGGRESSIVE = "aggressive"
    """Equity-heavy growth allocation."""


class RecommendationSource(StrEnum):
    """Where a single number (or suggestion) came from."""

    LIVE = "live"
    """Derived from an upstream call (simulation or text generation)."""

    FALLBACK = "fallback"
    """Derived from the local rule table / fixed multipliers."""


class OverallSource(StrEnum):
    """Provenance of a complete recommendation's portfolio projections."""

    LIVE = "live"
    FALLBACK = "fallback"
    MIXED = "mixed"


# Fixed request order; the orchestrator always projects all three.
DEFAULT_STRATEGIES: tuple[StrategyTag, ...] = (
    StrategyTag.CONSERVATIVE,
    StrategyTag.BALANCED,
    StrategyTag.AGGRESSIVE,
)

_UPSTREAM_NAMES: dict[StrategyTag, str] = {
    StrategyTag.CONSERVATIVE: "conservative",
    StrategyTag.BALANCED:     "balanced",
    StrategyTag.AGGRESSIVE:   "aggressive_growth",
}

_FROM_UPSTREAM: dict[str, StrategyTag] = {v: k for k, v in _UPSTREAM_NAMES.items()}


def to_upstream_strategy(tag: StrategyTag) -> str:
    """Return the upstream strategy name for an internal tag."""
    return _UPSTREAM_NAMES[StrategyTag(tag)]


def from_upstream_strategy(name: Optional[str]) -> Optional[StrategyTag]:
    """Map an upstream strategy name back to an internal tag.

    Internal tag values are accepted too (upstream has been seen echoing
    either form). Unknown or missing names return ``None``.
    """
    if not name:
        return None
    key = str(name).strip().lower()
    if key in _FROM_UPSTREAM:
        return _FROM_UPSTREAM[key]
    try:
        return StrategyTag(key)
    except ValueError:
        return None


def overall_source(sources: list[RecommendationSource]) -> OverallSource:
    """Merge per-strategy sources: all live → live, none live → fallback, else mixed."""
    live = sum(1 for s in sources if s == RecommendationSource.LIVE)
    if sources and live == len(sources):
        return OverallSource.LIVE
    if live == 0:
        return OverallSource.FALLBACK
    return OverallSource.MIXED
