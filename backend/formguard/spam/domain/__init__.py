"""Detectors, decision engine and strike ledger."""
