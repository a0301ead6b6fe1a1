import math

class RiskManager:
    def __init__(self, account_balance: float = 10000.0, risk_per_trade: float = 0.01, qty_step: float = 0.001):
        self.account_balance = account_balance
        self.risk_per_trade = risk_per_trade
        self.qty_step = qty_step

    @property
    def risk_amount(self) -> float:
        return self.account_balance * self.risk_per_trade

    def calc_size(self, entry_price: float, stop_loss: float) -> float:
        """Units such that hitting the stop loses ``risk_per_trade`` of the account."""
        per_unit_risk = abs(entry_price - stop_loss)
        if per_unit_risk <= 0:
            return 0.0
        raw_qty = self.risk_amount / per_unit_risk
        if self.qty_step and self.qty_step > 0:
            # tolerance keeps 100.0 from flooring to 99.999 after the division
            raw_qty = math.floor(raw_qty / self.qty_step + 1e-9) * self.qty_step
            decimals = max(0, -int(math.floor(math.log10(self.qty_step))))
            raw_qty = round(raw_qty, decimals)
        return max(0.0, raw_qty)
