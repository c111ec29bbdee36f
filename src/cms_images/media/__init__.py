"""Replacement of repository images with generated artifacts."""
