"""Alerting pipeline services."""
