"""
stockswap.reporting — plain-text rendering for CLI commands.

Modules:
  formatters — ASCII formatters for recommendations, traces and savings.
"""
