"""Utility functions for quantity parsing and comparison."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Mapping, Optional, Tuple

from kubernetes.utils import parse_quantity

from .config import MANAGED_BY_LABEL, MANAGED_BY_VALUE, NAME_LABEL


@dataclass(frozen=True, eq=False)
class Quantity:
    """
    A resource quantity such as "500m", "2Gi" or "10".

    Equality and hashing use the exact decimal value, so "1Gi" and
    "1024Mi" are the same quantity.
    """
    text: str
    value: Decimal

    @classmethod
    def parse(cls, text) -> "Quantity":
        """
        Parse a Kubernetes quantity string.

        Raises:
            ValueError: if the text is not a finite quantity
        """
        text = str(text).strip()
        value = parse_quantity(text)
        if not value.is_finite():
            raise ValueError(f"{text!r} is not a finite quantity")
        return cls(text=text, value=value)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Quantity):
            return NotImplemented
        return self.value == other.value

    def __hash__(self) -> int:
        return hash(self.value)

    def __str__(self) -> str:
        return self.text


def parse_live_quantity(text) -> Optional[Quantity]:
    """Parse a quantity read back from the API, returning None if invalid."""
    try:
        return Quantity.parse(text)
    except ValueError:
        return None


def hard_limits_equal(
    live: Optional[Mapping[str, str]],
    rendered: Mapping[str, Quantity]
) -> bool:
    """
    Compare a live ResourceQuota's hard limits with rendered limits.

    Both mappings must have the same keys and each key must hold the same
    quantity value. Ordering and textual representation are ignored.
    """
    live = live or {}
    if set(live) != set(rendered):
        return False

    for name, quantity in rendered.items():
        if parse_live_quantity(live[name]) != quantity:
            return False

    return True


def serialize_hard(rendered: Mapping[str, Quantity]) -> Dict[str, str]:
    """Convert rendered limits to the string map the API expects."""
    return {name: str(quantity) for name, quantity in rendered.items()}


def labels_for_resource_quota(name: str) -> Dict[str, str]:
    """Labels that mark a ResourceQuota as managed for the given owner."""
    return {MANAGED_BY_LABEL: MANAGED_BY_VALUE, NAME_LABEL: name}


def make_key(namespace: str, name: str) -> str:
    """Create a queue key from namespace and name."""
    return f"{namespace}/{name}"


def split_key(key: str) -> Tuple[str, str]:
    """Split a queue key into (namespace, name)."""
    namespace, _, name = key.partition("/")
    return namespace, name
