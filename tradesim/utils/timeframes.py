"""Timeframe string to minutes conversion."""

from datetime import timedelta


def timeframe_minutes(tf: str) -> int:
    """Convert Binance-style timeframe (e.g. '5m', '1h', '1d', '1w') to minutes."""
    tf = tf.strip().lower()
    try:
        if tf.endswith("m"):
            value = int(tf[:-1])
        elif tf.endswith("h"):
            value = int(tf[:-1]) * 60
        elif tf.endswith("d"):
            value = int(tf[:-1]) * 60 * 24
        elif tf.endswith("w"):
            value = int(tf[:-1]) * 60 * 24 * 7
        else:
            raise ValueError
    except ValueError:
        raise ValueError(f"Unsupported timeframe: {tf}") from None
    if value <= 0:
        raise ValueError(f"Unsupported timeframe: {tf}")
    return value


def timeframe_delta(tf: str) -> timedelta:
    """Bar spacing for a timeframe string."""
    return timedelta(minutes=timeframe_minutes(tf))
