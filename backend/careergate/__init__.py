"""Visitor analytics for the Gulf Career Gateway job board."""
