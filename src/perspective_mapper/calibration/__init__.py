"""Persistence of surface mappings."""

from .store import HandleStyle, MappingRecord, MappingStore  # noqa: F401
