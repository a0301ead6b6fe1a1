from typing import Any, Dict, List

import pandas as pd

from perptrader.models.trade_models import ExitReason, Position


def trade_stats(positions: List[Position]) -> Dict[str, Any]:
    """Win rate and PnL over closed positions; rejected orders are not trades and are left out."""
    rows = [
        p.to_dict() for p in positions
        if not p.is_open and p.exit_reason is not ExitReason.ORDER_REJECTED
    ]
    if not rows:
        return {"total_trades": 0, "wins": 0, "losses": 0, "win_rate": 0.0, "total_pnl": 0.0, "by_strategy": {}}

    df = pd.DataFrame(rows)
    df["pnl"] = df["pnl"].astype(float)
    by_strategy = {}
    for strategy_id, group in df.groupby("strategy_id"):
        by_strategy[strategy_id] = {
            "trades": int(len(group)),
            "win_rate": round(float((group["pnl"] > 0).mean() * 100), 2),
            "total_pnl": round(float(group["pnl"].sum()), 4),
        }
    wins = int((df["pnl"] > 0).sum())
    return {
        "total_trades": int(len(df)),
        "wins": wins,
        "losses": int(len(df) - wins),
        "win_rate": round(wins / len(df) * 100, 2),
        "total_pnl": round(float(df["pnl"].sum()), 4),
        "by_strategy": by_strategy,
    }
