"""Validation of ACL tags assigned to machines and pre-auth keys."""

from __future__ import annotations


class InvalidTagError(ValueError):
    """Raised when a tag does not follow the ACL tag format."""


def validate_tag(tag: str) -> None:
    """Raise :class:`InvalidTagError` unless ``tag`` is a well-formed ACL tag."""
    if not tag.startswith("tag:"):
        raise InvalidTagError("tag must start with the string 'tag:'")
    if tag.lower() != tag:
        raise InvalidTagError("tag should be lowercase")
    if len(tag.split()) > 1:
        raise InvalidTagError("tag should not contains space")