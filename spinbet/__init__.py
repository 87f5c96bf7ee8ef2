"""SpinBet - number spin betting service with a manual-approval wallet."""

__version__ = "1.0.0"
