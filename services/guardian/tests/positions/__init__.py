"""Position source tests: cadence filter, serial dispatch, cancellation."""
