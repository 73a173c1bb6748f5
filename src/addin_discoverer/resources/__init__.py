"""Bundled exclusion and inclusion lists."""
