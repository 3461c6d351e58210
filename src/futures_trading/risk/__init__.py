"""Risk budget, position sizing, circuit breakers and the risk gate."""
