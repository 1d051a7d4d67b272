"""Domain layer: error taxonomy, session models and services."""
