"""Webhook models and order value objects."""
