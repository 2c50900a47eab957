"""Real-time air-quality threshold alerting service."""
