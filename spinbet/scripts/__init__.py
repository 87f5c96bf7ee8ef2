"""Operator scripts for SpinBet."""
