from prometheus_client import Counter, Histogram

candles_counter = Counter("ema_trader_candles_total", "Closed candles dispatched to the strategy")
signals_counter = Counter("ema_trader_signals_total", "Crossover signals detected", ["signal"])
brackets_counter = Counter("ema_trader_brackets_total", "Brackets placed", ["side"])
risk_rejections_counter = Counter("ema_trader_risk_rejections_total", "Entries blocked by the risk gate")
placement_failures_counter = Counter("ema_trader_placement_failures_total", "Bracket placement failures", ["unhedged"])
feed_reconnects_counter = Counter("ema_trader_feed_reconnects_total", "Market data feed reconnect attempts")
evaluation_latency = Histogram("ema_trader_evaluation_seconds", "Strategy evaluation latency seconds")
