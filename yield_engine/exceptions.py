class YieldEngineError(Exception):
    """Base class for yield engine errors."""


class InvalidConfigurationError(YieldEngineError, ValueError):
    """Raised when an AutoRebalanceConfig (or engine setting) is malformed."""

    def __init__(self, problems):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("Invalid configuration: " + "; ".join(self.problems))


class SourceUnavailableError(YieldEngineError):
    """A market or position source could not be read."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class PriceUnavailableError(YieldEngineError):
    """The price oracle has no usable price for a symbol."""

    def __init__(self, symbol: str, message: str = "no price available"):
        self.symbol = symbol
        super().__init__(f"{symbol}: {message}")


class ExecutionInProgressError(YieldEngineError):
    """Another rebalance batch is already in flight for the account."""

    def __init__(self, account_key: str):
        self.account_key = account_key
        super().__init__(f"Rebalance already in progress for account {account_key}")
