"""
Exchange modes: the data-movement semantics of an edge.

The set is closed. Graph-walking code never dispatches on operator subtypes;
it only asks whether an edge is *coupled* (producer and consumer must share
one parallelism) or repartitioning.
"""

from __future__ import annotations

from enum import Enum, unique


@unique
class ExchangeMode(str, Enum):
    """How records move from a producer to a consumer."""

    FORWARD = "forward"        # No repartition, one-to-one instance wiring
    SINGLETON = "singleton"    # Everything to a single consumer instance
    SHUFFLE = "shuffle"        # Round-robin / rebalance
    HASH = "hash"              # Key-partitioned
    BROADCAST = "broadcast"    # Every record to every consumer instance

    @classmethod
    def from_string(cls, value: str) -> "ExchangeMode":
        """Parse a mode name case-insensitively ("FORWARD", "forward")."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown exchange mode {value!r} (expected one of: {valid})")

    @property
    def is_coupled(self) -> bool:
        """Producer and consumer must end with the same parallelism."""
        return self in _COUPLED

    @property
    def is_repartitioning(self) -> bool:
        return not self.is_coupled


_COUPLED = frozenset({ExchangeMode.FORWARD, ExchangeMode.SINGLETON})


def is_coupled(mode: ExchangeMode) -> bool:
    """Check whether an edge mode ties both endpoints into one stage."""
    return mode.is_coupled
