"""
Domain errors raised by the wallet, game and auth layers.
The API turns each one into a JSON response with its status code.
"""


class SpinBetError(Exception):
    """Base class for expected business-rule failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SpinBetError):
    """Input is malformed or out of range."""

    status_code = 400


class Unauthorized(SpinBetError):
    """No valid session."""

    status_code = 401


class Forbidden(SpinBetError):
    """Resource belongs to another user."""

    status_code = 403


class NotFound(SpinBetError):
    """Unknown user, deposit or code."""

    status_code = 404


class AlreadyProcessed(SpinBetError):
    """Deposit (or request) is no longer pending."""

    status_code = 400


class InsufficientBalance(SpinBetError):
    """Stake or withdrawal exceeds the wallet balance."""

    status_code = 400

    def __init__(self, message: str = "Insufficient balance"):
        super().__init__(message)
