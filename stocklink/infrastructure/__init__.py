"""Infrastructure layer - storage and notification adapters."""
