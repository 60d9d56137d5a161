"""Concrete adapters for the provider interfaces."""
