"""Metadata selector evaluation."""

from __future__ import annotations

import re

from core.domain.models import MetadataMatcher, ObjectMeta
from core.errors import PatternError


def matches(selector: MetadataMatcher, meta: ObjectMeta) -> bool:
    """Return whether `meta` is selected by `selector`.

    Both patterns are unanchored regular expressions and both must match.
    An empty namespace pattern is replaced by the candidate's own namespace,
    used as a pattern as-is, which restricts the selector to resources in
    the candidate's namespace.

    Raises `PatternError` if a pattern does not compile.
    """

    try:
        name_regex = re.compile(selector.name)
    except re.error as exc:
        raise PatternError(f"invalid matcher: name: {exc}") from exc

    namespace_expression = selector.namespace or meta.namespace

    try:
        namespace_regex = re.compile(namespace_expression)
    except re.error as exc:
        raise PatternError(f"invalid matcher: namespace: {exc}") from exc

    return (
        name_regex.search(meta.name) is not None
        and namespace_regex.search(meta.namespace) is not None
    )
