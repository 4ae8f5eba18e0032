"""Maps native source records onto WorkItem."""

from .service import Normalizer, normalizer, parse_timestamp

__all__ = ["Normalizer", "normalizer", "parse_timestamp"]
