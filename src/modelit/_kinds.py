"""Closed sets of kinds for variables and edges."""

from enum import StrEnum
from typing import Self


class StrEnumWithDoc(StrEnum):
    """Base class for string enums whose members carry a docstring.

    Implementation based on this article: https://guicommits.com/add-docstrings-python-enum-members/
    """

    def __new__(cls, value: str, doc: str = "") -> Self:
        """Create a new enum member with a docstring."""
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.__doc__ = doc
        return obj


class VariableKind(StrEnumWithDoc):
    """What a variable represents."""

    SCALAR = "scalar", "A single quantity, possibly computed per step."
    SERIES = "series", "A sequence of values over the horizon."
    PARAMETER = "parameter", "An input the user sets; its first value is snapshotted for evaluation."


class EdgeKind(StrEnumWithDoc):
    """The relationship an annotated edge describes."""

    DEPENDENCY = "dependency", "Target's formula reads source at the same step."
    TEMPORAL = "temporal", "Target reads source at a lagged step."
    CAUSAL = "causal", "Source drives target without a formula link."
    DERIVED = "derived", "Target is derived from source."
    CONSTRAINT = "constraint", "A mathematical constraint between the two."
