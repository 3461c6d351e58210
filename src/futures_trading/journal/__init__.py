"""Append-only event journal."""
