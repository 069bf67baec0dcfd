"""Taskhub Framework - shared infrastructure."""
