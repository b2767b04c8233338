"""Utility helpers shared across the generator."""
