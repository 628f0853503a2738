"""Node types for reconstructed content after parsing the allowlisted fragment."""

from dataclasses import dataclass, field
from typing import Tuple, Union


@dataclass(frozen=True)
class Text:
    value: str
    strong: bool = False


@dataclass(frozen=True)
class LineBreak:
    pass


Inline = Union[Text, LineBreak]


@dataclass(frozen=True)
class Heading:
    level: int
    inlines: Tuple[Inline, ...]


@dataclass(frozen=True)
class Paragraph:
    inlines: Tuple[Inline, ...]


@dataclass(frozen=True)
class ListItem:
    inlines: Tuple[Inline, ...]
    children: Tuple["BulletList", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class BulletList:
    items: Tuple[ListItem, ...]


Block = Union[Heading, Paragraph, BulletList]
