"""Seed prices and per-ticker parameters for the market simulator."""

# Realistic starting prices for common USD crypto pairs
SEED_PRICES: dict[str, float] = {
    "BTCUSD": 65000.12,
    "ETHUSD": 3400.50,
    "SOLUSD": 150.25,
    "BNBUSD": 580.00,
    "XRPUSD": 0.52,
    "ADAUSD": 0.45,
    "DOGEUSD": 0.15,
    "AVAXUSD": 35.00,
    "DOTUSD": 7.20,
    "LINKUSD": 14.50,
    "LTCUSD": 82.00,
    "UNIUSD": 9.80,
    "AAVEUSD": 95.00,
    "ATOMUSD": 8.60,
}

# Per-ticker GBM parameters
# sigma: annualized volatility (higher = more price movement)
# mu: annualized drift / expected return
TICKER_PARAMS: dict[str, dict[str, float]] = {
    "BTCUSD": {"sigma": 0.55, "mu": 0.10},
    "ETHUSD": {"sigma": 0.70, "mu": 0.10},
    "SOLUSD": {"sigma": 0.95, "mu": 0.12},
    "BNBUSD": {"sigma": 0.60, "mu": 0.08},
    "XRPUSD": {"sigma": 0.85, "mu": 0.05},
    "ADAUSD": {"sigma": 0.85, "mu": 0.05},
    "DOGEUSD": {"sigma": 1.10, "mu": 0.05},  # Meme coin, very volatile
    "AVAXUSD": {"sigma": 0.95, "mu": 0.08},
    "DOTUSD": {"sigma": 0.85, "mu": 0.05},
    "LINKUSD": {"sigma": 0.90, "mu": 0.08},
    "LTCUSD": {"sigma": 0.70, "mu": 0.04},
    "UNIUSD": {"sigma": 0.95, "mu": 0.06},
    "AAVEUSD": {"sigma": 0.95, "mu": 0.06},
    "ATOMUSD": {"sigma": 0.90, "mu": 0.05},
}

# Default parameters for tickers not in the list above (dynamically added)
DEFAULT_PARAMS: dict[str, float] = {"sigma": 0.90, "mu": 0.05}

# Correlation groups for the simulator's Cholesky decomposition
CORRELATION_GROUPS: dict[str, set[str]] = {
    "majors": {"BTCUSD", "ETHUSD", "BNBUSD", "LTCUSD"},
    "platforms": {"SOLUSD", "ADAUSD", "AVAXUSD", "DOTUSD", "ATOMUSD"},
    "defi": {"LINKUSD", "UNIUSD", "AAVEUSD"},
}

# Correlation coefficients
INTRA_MAJORS_CORR = 0.8  # BTC drags the majors with it
INTRA_GROUP_CORR = 0.6  # Platforms and DeFi tokens move together
CROSS_GROUP_CORR = 0.5  # The whole market is fairly correlated
DOGE_CORR = 0.3  # DOGE does its own thing
