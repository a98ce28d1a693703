"""Adapters for the external mount / unmount / encryption tools."""
