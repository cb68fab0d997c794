"""
ASCII terminal formatters for CLI commands.

All formatters accept models and return plain multi-line strings suitable
for ``typer.echo()``.

Source tags
-----------
Every projection row carries where its numbers came from::

  [LIVE]      upstream simulation
  [FALLBACK]  fixed local multiplier (12-month illustration)
"""

from __future__ import annotations

from typing import Optional

from stockswap.models.purchase import AvoidedPurchase, SavingsSummary
from stockswap.models.recommendation import Recommendation
from stockswap.pipeline.orchestrator import RequestTrace


# ── Recommendation ────────────────────────────────────────────────────────────


def format_recommendation(rec: Recommendation) -> str:
    """Format a recommendation as a header, ticker line and projection table::

        === StockSwap: Sony WH-1000XM5 ===
          Category: electronics   Price: $399.99   Overall: mixed

          Tickers: AAPL, MSFT  [live]
          ...
          Strategy        Invested   Projected    Return      %    Period    Source
          --------------------------------------------------------------------------
          conservative     $399.99     $411.20    +$11.21  +2.80%  6 months    [LIVE]

    Args:
        rec: Recommendation returned by the orchestrator.

    Returns:
        Multi-line string.
    """
    product = rec.product
    lines: list[str] = []
    lines.append("")
    lines.append(f"=== StockSwap: {product.name} ===")
    brand = f"   Brand: {product.brand}" if product.brand else ""
    lines.append(
        f"  Category: {product.category}{brand}   Price: ${product.price:,.2f}"
        f"   Overall: {rec.overall_source}"
    )
    lines.append("")
    lines.append(f"  Tickers: {', '.join(rec.tickers)}  [{rec.suggestion_source}]")
    lines.append(f"  {rec.educational_text}")
    lines.append("")
    lines.append(f"  {rec.explanation_text}")
    lines.append("")

    header = (
        f"  {'Strategy':<13}  {'Invested':>11}  {'Projected':>11}  "
        f"{'Return':>10}  {'%':>7}  {'Period':>10}  {'Source':>10}"
    )
    lines.append(header)
    lines.append("  " + "-" * (len(header) - 2))
    for p in rec.portfolios:
        lines.append(
            f"  {p.strategy_tag.value:<13}  {_money(p.initial_amount):>11}  "
            f"{_money(p.projected_value):>11}  {_signed_money(p.total_return):>10}  "
            f"{p.return_percentage:>+6.2f}%  {p.time_period:>10}  "
            f"{'[' + p.source.value.upper() + ']':>10}"
        )
    return "\n".join(lines)


def format_trace(trace: RequestTrace) -> str:
    """Format a request trace: state path, then any degraded steps."""
    lines = [
        "",
        f"  Request:  {trace.request_id}  (attempts: {trace.attempts}"
        f"{', cancelled' if trace.cancelled else ''})",
        f"  States:   {' -> '.join(s.value for s in trace.states)}",
    ]
    if trace.errors:
        lines.append("  Degraded:")
        lines.extend(f"    - {e}" for e in trace.errors)
    else:
        lines.append("  Degraded: (none)")
    return "\n".join(lines)


# ── Savings ───────────────────────────────────────────────────────────────────


def format_savings(
    summary: SavingsSummary,
    history: Optional[list[AvoidedPurchase]] = None,
) -> str:
    """Format the running savings total and, optionally, recent purchases."""
    lines: list[str] = []
    lines.append("")
    lines.append("=== Avoided Purchases ===")
    lines.append(f"  Total saved:  {_money(summary.total_savings)}")
    lines.append(f"  Purchases:    {summary.purchase_count}")

    if not history:
        if summary.purchase_count == 0:
            lines.append("")
            lines.append("  (nothing tracked yet; run 'track-purchase' first)")
        return "\n".join(lines)

    lines.append("")
    header = f"  {'Tracked at':<20}  {'Item':<34}  {'Category':<14}  {'Price':>10}"
    lines.append(header)
    lines.append("  " + "-" * (len(header) - 2))
    for p in history:
        lines.append(
            f"  {p.tracked_at.strftime('%Y-%m-%d %H:%M'):<20}  {_clip(p.name, 34):<34}  "
            f"{_clip(p.category, 14):<14}  {_money(p.price):>10}"
        )
    return "\n".join(lines)


def _money(amount: float) -> str:
    return f"${amount:,.2f}"


def _signed_money(amount: float) -> str:
    sign = "+" if amount >= 0 else "-"
    return f"{sign}${abs(amount):,.2f}"


def _clip(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."
