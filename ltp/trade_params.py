"""Entry/stop/target suggestions for a scored setup."""

from typing import Optional

from ltp.models import Direction, KeyLevel, TradeParams

# ATR estimate as a fraction of price
ATR_PCT = 0.01


def calculate_trade_params(price: float, level: Optional[KeyLevel], direction: str) -> TradeParams:
    """
    Suggest entry, stop, three R-multiple targets and reward:risk to target 2.

    The stop sits one ATR estimate beyond the level. No level means no
    trade parameters (every field None).
    """
    if level is None:
        return TradeParams()

    atr = price * ATR_PCT
    entry = price

    if direction == Direction.BEARISH.value:
        stop = level.price + atr
        risk = stop - entry
        targets = [entry - risk * r for r in (1, 2, 3)]
    else:
        stop = level.price - atr
        risk = entry - stop
        targets = [entry + risk * r for r in (1, 2, 3)]

    risk_reward = round(abs(targets[1] - entry) / abs(risk), 1) if risk else 0.0

    return TradeParams(
        suggested_entry=round(entry, 2),
        suggested_stop=round(stop, 2),
        target_1=round(targets[0], 2),
        target_2=round(targets[1], 2),
        target_3=round(targets[2], 2),
        risk_reward=risk_reward,
    )
