"""Structured resource references (``nrn:msh:...``).

A reference ties a list or list item to an external resource such as a recipe
or a week menu.  The string form is::

    nrn:msh:<hostname>:<type>:<id>[:<suffix>]

Empty segments are significant: ``nrn:msh::list:abc`` has an empty hostname,
not a missing one.

Unknown ``type`` tokens are accepted and mapped to :attr:`RefType.UNKNOWN`.
The raw token is kept on the instance so that formatting the reference
reproduces the original string.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Final

_PREFIX: Final[tuple[str, str]] = ("nrn", "msh")
_SEPARATOR: Final[str] = ":"


class RefParseError(ValueError):
    """Raised when a string is not a valid ``nrn:msh`` reference."""


class RefType(str, Enum):
    LIST = "list"
    RECIPE = "wprm_recipe"
    WEEKMENU = "weekmenu"
    SHOPPINGLIST = "shoppinglist"
    UNKNOWN = "unknown"

    @classmethod
    def from_token(cls, token: str) -> "RefType":
        try:
            return cls(token)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True, slots=True)
class Ref:
    """Immutable reference; equality is over hostname, type, id and suffix."""

    type: RefType
    hostname: str = ""
    id: str = "default"
    suffix: str | None = None
    raw_type: str | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.type, RefType):
            raise ValueError(f"Ref.type must be a RefType, got {self.type!r}")
        for name in ("hostname", "id", "suffix", "raw_type"):
            value = getattr(self, name)
            if value is None and name in ("suffix", "raw_type"):
                continue
            if not isinstance(value, str):
                raise ValueError(f"Ref.{name} must be a string")
            if _SEPARATOR in value:
                raise ValueError(f"Ref.{name} must not contain {_SEPARATOR!r}: {value!r}")
        if (
            self.type is RefType.UNKNOWN
            and self.raw_type is not None
            and RefType.from_token(self.raw_type) is not RefType.UNKNOWN
        ):
            raise ValueError(f"Ref.raw_type {self.raw_type!r} names a known type")

    @classmethod
    def parse(cls, value: str) -> "Ref":
        """Parse *value* into a :class:`Ref`.

        Raises
        ------
        RefParseError
            If the string does not have 5 or 6 segments or does not start
            with ``nrn:msh``.
        """
        if not isinstance(value, str):
            raise RefParseError(f"Invalid ref: expected a string, got {type(value).__name__}")

        parts = value.split(_SEPARATOR)
        if len(parts) not in (5, 6) or tuple(parts[:2]) != _PREFIX:
            raise RefParseError(f"Invalid ref format: {value}")

        token = parts[3]
        return cls(
            type=RefType.from_token(token),
            hostname=parts[2],
            id=parts[4],
            suffix=parts[5] if len(parts) == 6 else None,
            raw_type=token,
        )

    def format(self) -> str:
        """Return the string form; the suffix segment is omitted when absent."""
        type_token = self.type.value
        if self.type is RefType.UNKNOWN and self.raw_type is not None:
            type_token = self.raw_type
        parts = [*_PREFIX, self.hostname, type_token, self.id]
        if self.suffix is not None:
            parts.append(self.suffix)
        return _SEPARATOR.join(parts)

    def __str__(self) -> str:
        return self.format()


def parse_ref(value: str) -> Ref:
    return Ref.parse(value)


def format_ref(ref: Ref) -> str:
    return ref.format()
