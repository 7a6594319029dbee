"""Awareness program impact scoring service."""
