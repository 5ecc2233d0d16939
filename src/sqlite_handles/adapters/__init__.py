"""Adapters layer - concrete bindings to external systems."""
