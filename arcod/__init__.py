"""Arcod download job service."""
