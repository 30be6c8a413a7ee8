"""Adapters - concrete implementations of the core protocols."""
