"""Forward-return labelling for dataset snapshots."""

from core.models.signal import LabelDirection


def label_outcome(
    price_now: float | None,
    price_future: float,
    flat_threshold_pct: float = 0.0,
) -> tuple[LabelDirection, float]:
    """Classify the move from price_now to price_future.

    Returns (direction, magnitude) where magnitude is the percent move
    rounded to 4 decimals. Moves within +/- flat_threshold_pct are FLAT.
    """
    if price_now is None or price_now <= 0:
        raise ValueError(f"Cannot label snapshot without a positive entry price: {price_now!r}")

    magnitude = (price_future - price_now) / price_now * 100

    if magnitude > flat_threshold_pct:
        direction = LabelDirection.UP
    elif magnitude < -flat_threshold_pct:
        direction = LabelDirection.DOWN
    else:
        direction = LabelDirection.FLAT

    return direction, round(magnitude, 4)
