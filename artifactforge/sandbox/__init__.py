"""Sandbox backends for the render engine."""
