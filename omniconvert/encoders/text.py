"""Markdown and plain-text targets."""

from typing import Sequence

from ..content.nodes import Block
from ..content.serializers import to_markdown, to_plain_text


def encode_markdown(blocks: Sequence[Block]) -> bytes:
    return to_markdown(blocks).encode("utf-8")


def encode_plain_text(blocks: Sequence[Block]) -> bytes:
    return to_plain_text(blocks).encode("utf-8")
