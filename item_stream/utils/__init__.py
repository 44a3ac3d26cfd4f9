"""Utility modules for item-stream."""
