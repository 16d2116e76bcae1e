"""
Yield optimization and rebalancing engine.

Ranks yield opportunities, composes allocation strategies, analyses
portfolios and gates rebalance actions for automatic execution.
"""
