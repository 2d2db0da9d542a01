"""Reproducible seed derivation for image generation."""

from __future__ import annotations

import secrets
from typing import Any, Optional

from eventcanvas.generation.types import GenerationRequest


SEED_MODULUS = 1_000_000


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    if value & 0x80000000:
        return value - 0x100000000
    return value


def derive_seed(text: str) -> int:
    """Return a seed in ``[0, 999999]`` from the rolling ``h * 31 + c`` string hash.

    Characters are consumed as UTF-16 code units so seeds match the ones the
    web client computed for the same text, including astral characters.
    """

    h = 0
    data = text.encode("utf-16-le", "surrogatepass")
    for index in range(0, len(data), 2):
        code_unit = data[index] | (data[index + 1] << 8)
        h = _to_int32((h << 5) - h + code_unit)
    return abs(h) % SEED_MODULUS


def seed_text(prompt: str, *, slide_index: Optional[Any] = None, suffix: Optional[str] = None) -> str:
    if slide_index is not None:
        return f"{prompt}_slide_{slide_index}"
    if suffix:
        return f"{prompt}_{suffix}"
    return prompt


def seed_text_for(request: GenerationRequest) -> str:
    details = request.event_details or {}
    return seed_text(
        request.prompt,
        slide_index=details.get("slide_index"),
        suffix=request.event_type,
    )


def resolve_seed(request: GenerationRequest) -> int:
    """Caller seed verbatim, a random seed when asked for, else the derived one."""

    if request.seed is not None:
        return request.seed
    if request.randomize_seed:
        return secrets.randbelow(SEED_MODULUS)
    return derive_seed(seed_text_for(request))
