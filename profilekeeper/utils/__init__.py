"""Filesystem and formatting helpers for profilekeeper."""
