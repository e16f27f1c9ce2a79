"""Shared building blocks: errors, logging, formulas, metrics and observers."""
