"""Core I/O layer: command execution, circuit breaker, AeroSpace client, config."""
