"""
Base building blocks:
identity and case-insensitive naming semantics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from taxonomist.domain.model.enums import EntityType


def new_id() -> UUID:
    return uuid4()


def normalize_name(name: str) -> str:
    """Return the lookup key for a taxonomy name ("  Body Milk " -> "body milk")."""
    return name.strip().casefold()


@dataclass(eq=False, kw_only=True)
class Entity:
    """Internal identity exists immediately in the domain."""

    id: UUID = field(default_factory=new_id)

    # class-level discriminator; subclasses must override
    ENTITY_TYPE: ClassVar[EntityType]

    @property
    def entity_type(self) -> EntityType:
        return self.ENTITY_TYPE


@dataclass(eq=False, kw_only=True)
class NamedEntity(Entity):
    """Entity identified by a display name that is unique case-insensitively."""

    name: str
    name_key: str = field(default="", init=False, repr=False)

    def __post_init__(self) -> None:
        self.rename(self.name)

    def rename(self, name: str) -> None:
        stripped = name.strip()
        if not stripped:
            raise ValueError(f"{self.ENTITY_TYPE} name must not be blank")
        self.name = stripped
        self.name_key = normalize_name(stripped)

    def matches(self, name: str) -> bool:
        return self.name_key == normalize_name(name)
