from prometheus_client import Counter, Histogram

signals_counter = Counter("perptrader_signals_total", "Total signals generated", ["strategy", "kind"])
positions_opened_counter = Counter("perptrader_positions_opened_total", "Positions opened", ["strategy"])
open_rejected_counter = Counter("perptrader_open_rejected_total", "Open requests rejected", ["reason", "category"])
positions_closed_counter = Counter("perptrader_positions_closed_total", "Positions closed", ["reason"])
reconcile_blocked_counter = Counter("perptrader_reconcile_blocked_total", "Opens blocked by remote reconciliation", ["cause"])
ticks_skipped_counter = Counter("perptrader_ticks_skipped_total", "Scheduler ticks dropped while busy", ["task"])
tick_failures_counter = Counter("perptrader_tick_failures_total", "Scheduler runs that raised", ["task"])
order_latency = Histogram("perptrader_order_latency_seconds", "Order latency seconds")
exit_order_failures_counter = Counter("perptrader_exit_order_failures_total", "Exit orders refused or failed after a local close", ["reason"])
