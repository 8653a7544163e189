# flasharb/errors.py
"""
Error taxonomy for the execution engine

Every ExecutionError aborts the whole atomic unit. The class name is the
machine-readable reason recorded on a failed TradeResult.
"""

from typing import Optional


class FlashArbError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(FlashArbError, ValueError):
    """Invalid administrative configuration"""


# =============================================================================
# LEDGER
# =============================================================================

class LedgerError(FlashArbError):
    """Token ledger refused a movement"""


class InsufficientBalance(LedgerError):
    pass


class InsufficientAllowance(LedgerError):
    pass


# =============================================================================
# EXECUTION
# =============================================================================

class ExecutionError(FlashArbError):
    """An error that aborts one requestExecution unit"""

    phase = "execution"
    retryable = True

    def __init__(self, message: str = "", *, step: Optional[int] = None):
        super().__init__(message or self.__class__.__name__)
        self.message = message
        self.step = step

    @property
    def reason(self) -> str:
        return self.__class__.__name__


# Admission -------------------------------------------------------------------

class AdmissionError(ExecutionError):
    phase = "admission"


class CircuitBreakerTripped(AdmissionError):
    pass


class Unauthorized(AdmissionError):
    pass


class OrphanCallback(Unauthorized):
    """Loan callback with no matching outstanding request"""


class GasPriceTooHigh(AdmissionError):
    pass


class MevProtectionActive(AdmissionError):
    pass


class ReentrantExecution(AdmissionError):
    retryable = False


# Validation ------------------------------------------------------------------

class ValidationError(ExecutionError):
    phase = "validation"


class MalformedRoute(ValidationError):
    pass


class RouteBlacklisted(ValidationError):
    pass


class DeadlineExpired(ValidationError):
    pass


# Swap ------------------------------------------------------------------------

class SwapError(ExecutionError):
    phase = "swap"


class SlippageExceeded(SwapError):
    pass


class VenueUnavailable(SwapError):
    pass


# Profitability ---------------------------------------------------------------

class ProfitabilityError(ExecutionError):
    pass


class InsufficientProjectedProfit(ProfitabilityError):
    phase = "projection"


class InsufficientRealizedProfit(ProfitabilityError):
    phase = "settlement"


# Loan & repayment ------------------------------------------------------------

class LoanError(ExecutionError):
    phase = "loan"


class LoanUnavailable(LoanError):
    pass


class LoanCallbackMissing(LoanError):
    retryable = False


class RepaymentShortfall(ExecutionError):
    """Only reachable through a logic defect; never retried"""

    phase = "repayment"
    retryable = False
