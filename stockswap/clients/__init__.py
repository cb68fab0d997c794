"""
Upstream clients: the portfolio-simulation API and the text-generation API.

Submodules:
  finance_client     — typed wire layer over the portfolio-simulation REST API
  session            — SessionBootstrapper (token + account, serialized bootstrap)
  portfolio_client   — PortfolioLifecycleClient (reuse, cap purge, batched simulate)
  textgen_client     — TextGenerationClient (single /generate call)
  suggestion_client  — StockSuggestionClient (prompting, validation, fallback)

Every client is async and takes an ``httpx.AsyncClient`` owned by the caller;
the orchestrator opens those clients per request inside its own event loop.
"""
