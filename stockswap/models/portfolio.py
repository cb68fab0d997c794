"""
Upstream portfolio and simulation records, in internal vocabulary.

The wire layer translates upstream strategy names to ``StrategyTag`` before
building these models; records whose strategy cannot be mapped are dropped
there, so everything downstream can match on ``strategy_tag`` alone.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from stockswap.taxonomy.strategy_taxonomy import StrategyTag


class Portfolio(BaseModel):
    """An upstream portfolio owned by the session's account."""

    model_config = ConfigDict(frozen=True)

    id: str
    strategy_tag: StrategyTag
    initial_amount: float
    current_value: Optional[float] = None


class SimulationResult(BaseModel):
    """One strategy's outcome from the batched simulation call.

    Attributes:
        strategy_tag: Strategy the result belongs to (correlation key).
        projected_value: Portfolio value at the end of the simulated window.
        months_simulated: Window length actually simulated.
        percentage_return: Upstream-computed return, if it sent one.
        growth_trend: Optional month-by-month values.
        portfolio_id: Upstream id as echoed; used to match results to prepared portfolios.
    """

    model_config = ConfigDict(frozen=True)

    strategy_tag: StrategyTag
    projected_value: float
    months_simulated: int
    percentage_return: Optional[float] = None
    growth_trend: Optional[list[float]] = None
    portfolio_id: Optional[str] = None
