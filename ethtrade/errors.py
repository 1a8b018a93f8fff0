from typing import Any, Dict


class TradingError(Exception):
    """Base for every failure the engine reports to a caller"""
    kind = "Unknown"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        data = {"kind": self.kind, "message": self.message}
        data.update({key: str(value) for key, value in self.details.items()})
        return data


class InvalidAmount(TradingError):
    kind = "InvalidAmount"


class Overflow(TradingError):
    kind = "Overflow"


class UnknownToken(TradingError):
    kind = "UnknownToken"


class InvalidAddress(TradingError):
    kind = "InvalidAddress"


class InvalidQuoteCurrency(TradingError):
    kind = "InvalidQuoteCurrency"


class PoolNotFound(TradingError):
    kind = "NotFound"


class NoRouteFound(TradingError):
    kind = "NoRouteFound"


class InsufficientLiquidity(TradingError):
    kind = "InsufficientLiquidity"


class InvalidSlippage(TradingError):
    kind = "InvalidSlippage"


class GatewayTimeout(TradingError):
    kind = "GatewayTimeout"


class GatewayError(TradingError):
    """Transport fault or malformed node response"""
    kind = "GatewayError"


class EstimationFailed(TradingError):
    kind = "EstimationFailed"


class SimulationReverted(TradingError):
    kind = "SimulationReverted"

    def __init__(self, reason):
        super().__init__(f"Simulation reverted: {reason.message}", code=reason.code.value)
        self.reason = reason
