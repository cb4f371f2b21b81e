"""Backend transports, one per workspace mode."""
