"""
stockswap.savings — avoided-purchase history and running savings total.

Modules:
  tracker — SavingsTracker: track(), summary(), history().
"""
