"""Opaque id hashing capability.

Numeric primary and foreign keys can be exposed as opaque strings instead
of raw database ids. The hashing algorithm itself is supplied by the caller;
the API only needs a reversible encode / decode pair.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IdHasher(Protocol):
    """Reversible encoding of numeric ids.

    Example implementation:
        class PrefixHasher:
            def encode(self, value: str, seed: str = "") -> str:
                return "h" + value

            def decode(self, value: str) -> str:
                return value.removeprefix("h")
    """

    def encode(self, value: str, seed: str = "") -> str:
        """Encode an id value.

        Args:
            value: Id value as a string
            seed: Context string that may vary the output per row and field

        Returns:
            Opaque encoded id
        """
        ...

    def decode(self, value: str) -> str:
        """Decode an encoded id back to its value.

        Args:
            value: Opaque encoded id

        Returns:
            Original id value as a string
        """
        ...
