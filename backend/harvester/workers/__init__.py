"""Celery worker configuration."""
