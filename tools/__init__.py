"""Operator tooling for the round engine."""
