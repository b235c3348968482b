"""Stored document normalization package."""

from billcycle.validation.normalizer import LEGACY_FIELDS, RecordNormalizer

__all__ = ["LEGACY_FIELDS", "RecordNormalizer"]
