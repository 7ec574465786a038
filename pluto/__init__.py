"""Pluto: near-real-time quote distribution for a dynamic set of tickers."""
