"""Helpers shared by the API blueprints."""
