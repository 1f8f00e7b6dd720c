"""Conversation tree state: the store and answer section parsing."""

from inferflow.trees.sections import get_sections, parse_answer_into_sections
from inferflow.trees.store import TreeStore, check_integrity

__all__ = ["TreeStore", "check_integrity", "get_sections", "parse_answer_into_sections"]
