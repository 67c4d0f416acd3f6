"""Celery tasks for the scheduled reservation sweeps."""
