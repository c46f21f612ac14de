"""Command modules for shipctl."""
