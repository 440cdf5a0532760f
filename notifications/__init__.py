"""Outbound notification clients."""
