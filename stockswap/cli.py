"""
StockSwap — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute action (DB init, recommendation, savings tracking, ...).
  5. Report result to stdout.

Install and run::

    pip install -e .
    stockswap --help
    stockswap init-db
    stockswap validate-config
    stockswap recommend --name "Sony WH-1000XM5" --category electronics --price 399.99
    stockswap track-purchase --name "Sony WH-1000XM5" --category electronics --price 399.99
    stockswap savings
    stockswap native-host            # launched by the browser, not by hand
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="stockswap",
    help="StockSwap — invest-instead-of-buy recommendations.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from stockswap.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config, stream=None):
    """Set up logging from config."""
    from stockswap.utils.logging import configure_logging
    configure_logging(config.logging, stream=stream)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite database and apply the full schema.

    Safe to run multiple times — all DDL uses IF NOT EXISTS.
    """
    from stockswap.db.connection import SqliteStore
    from stockswap.db.schema import ALL_TABLE_NAMES

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    # The first session on a store applies the schema.
    with SqliteStore.from_config(config.database, target_path).session():
        pass

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields (API key masked).",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:     {config.database.db_path}")
    typer.echo(f"  Finance API:       {config.finance.base_url}")
    typer.echo(f"  Simulation months: {config.finance.simulation_months} "
               f"(ceiling {config.finance.months_ceiling})")
    typer.echo(f"  Text-gen model:    {config.textgen.model}")
    typer.echo(f"  Text-gen API key:  {'set' if config.textgen.api_key else 'NOT SET (rule-based suggestions only)'}")
    typer.echo(f"  Rejection rules:   {', '.join(r.name for r in config.textgen.rejection_rules)}")
    typer.echo(f"  Request budget:    {config.recommendation.request_budget_s:.1f}s "
               f"(+{config.recommendation.flow_retries} retries)")
    typer.echo(f"  Log level:         {config.logging.level}")
    typer.echo(f"  Debug mode:        {config.debug}")

    if show_full:
        dumped = config.model_dump()
        if dumped["textgen"].get("api_key"):
            dumped["textgen"]["api_key"] = "***"
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(dumped, indent=2, default=str))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("recommend")
def recommend(
    name: str = typer.Option(..., "--name", help="Product name."),
    category: str = typer.Option(..., "--category", help="Product category."),
    brand: Optional[str] = typer.Option(None, "--brand", help="Product brand."),
    price: Optional[float] = typer.Option(
        None,
        "--price",
        help="Product price in dollars (default from config if missing).",
    ),
    selected_text: Optional[str] = typer.Option(
        None,
        "--selected-text",
        help="Highlighted page text to pull a price from when --price is absent.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the recommendation as JSON."),
    show_trace: bool = typer.Option(False, "--trace", help="Print the request state trace."),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Get an invest-instead recommendation for one product.

    Never fails on upstream errors: unavailable services degrade to
    rule-based suggestions and fixed-multiplier projections.
    """
    from stockswap.pipeline.orchestrator import RecommendationOrchestrator
    from stockswap.reporting.formatters import format_recommendation, format_trace
    from stockswap.utils.shopping import parse_selected_price

    config = _load_config_or_exit(config_path)
    # JSON output owns stdout.
    _configure_logging(config, stream=sys.stderr if as_json else None)

    if price is None and selected_text:
        price = parse_selected_price(selected_text)
        if price is None:
            typer.echo(f"[WARN] No price found in selected text: {selected_text!r}", err=True)

    descriptor = {"name": name, "category": category, "brand": brand, "price": price}
    orchestrator = RecommendationOrchestrator(config)
    rec, trace = orchestrator.recommend_with_trace(descriptor)

    if as_json:
        payload = rec.model_dump(mode="json")
        if show_trace:
            payload["trace"] = {
                "request_id": trace.request_id,
                "states": [s.value for s in trace.states],
                "errors": trace.errors,
                "attempts": trace.attempts,
            }
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo(format_recommendation(rec))
    if show_trace:
        typer.echo(format_trace(trace))


@app.command("track-purchase")
def track_purchase(
    name: str = typer.Option(..., "--name", help="Product name."),
    category: str = typer.Option(..., "--category", help="Product category."),
    price: float = typer.Option(..., "--price", help="Price of the avoided purchase."),
    brand: Optional[str] = typer.Option(None, "--brand", help="Product brand."),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Record a purchase the user chose not to make."""
    from stockswap.savings.tracker import SavingsTracker

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    try:
        summary = SavingsTracker(config).track(
            {"name": name, "category": category, "brand": brand, "price": price}
        )
    except ValueError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"[OK] Tracked ${price:,.2f}. Total saved: ${summary.total_savings:,.2f} "
               f"across {summary.purchase_count} purchase(s).")


@app.command("savings")
def savings(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Show the running savings total and recent avoided purchases."""
    from stockswap.reporting.formatters import format_savings
    from stockswap.savings.tracker import SavingsTracker

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    tracker = SavingsTracker(config)
    typer.echo(format_savings(tracker.summary(), tracker.history()))


@app.command("reset-session")
def reset_session(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Forget the stored token and account.

    The next recommendation registers a fresh team and account, which also
    starts a fresh simulation-months allowance upstream.
    """
    from stockswap.db.repositories.credential_repo import CredentialStore

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    CredentialStore(
        config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ).clear()
    typer.echo("[OK] Session credentials cleared.")


@app.command("is-shopping-site")
def is_shopping_site(
    url: str = typer.Argument(..., help="Page URL to check."),
) -> None:
    """Exit 0 if URL belongs to a supported retailer, else exit 1."""
    from stockswap.utils.shopping import is_shopping_website

    if is_shopping_website(url):
        typer.echo(f"[OK] {url} is a supported shopping site.")
        return
    typer.echo(f"[NO] {url} is not a supported shopping site.")
    raise typer.Exit(code=1)


@app.command("native-host")
def native_host(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Run the browser native-messaging host on stdin/stdout until EOF."""
    from stockswap.native_host import NativeMessagingHost

    config = _load_config_or_exit(config_path)
    # stdout is the wire; logs go to stderr (and the log file).
    _configure_logging(config, stream=sys.stderr)

    NativeMessagingHost(config).serve()


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
