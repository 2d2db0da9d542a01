from __future__ import annotations

import pytest

from eventcanvas.generation.seed import SEED_MODULUS, derive_seed, resolve_seed, seed_text, seed_text_for
from eventcanvas.generation.types import GenerationRequest


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("", 0),
        ("a", 97),
        ("ab", 3105),
        ("abc", 96354),
        ("hello world", 106052),
        ("promo_slide_0", 98254),
        ("promo_slide_1", 98253),
        ("Birthday bash", 178231),
        ("Birthday bash_slide_2", 674340),
        ("Summer gala_longimage_3slides", 141750),
    ],
)
def test_derive_seed_matches_known_values(text: str, expected: int) -> None:
    assert derive_seed(text) == expected


def test_derive_seed_is_stable_and_bounded() -> None:
    prompt = "Neon rooftop party with a skyline backdrop " * 20
    assert derive_seed(prompt) == derive_seed(prompt)
    assert 0 <= derive_seed(prompt) < SEED_MODULUS
    assert 0 <= derive_seed("\U0001F389 party time") < SEED_MODULUS


def test_seed_text_prefers_slide_index_over_suffix() -> None:
    assert seed_text("promo", slide_index=0) == "promo_slide_0"
    assert seed_text("promo", slide_index=1, suffix="carousel") == "promo_slide_1"
    assert seed_text("Summer gala", suffix="longimage_3slides") == "Summer gala_longimage_3slides"
    assert seed_text("Summer gala") == "Summer gala"


def test_seed_text_for_request_uses_event_details() -> None:
    request = GenerationRequest(prompt="Birthday bash", user_id="user-1", event_details={"slide_index": 2})
    assert seed_text_for(request) == "Birthday bash_slide_2"
    assert resolve_seed(request) == 674340


def test_resolve_seed_returns_caller_seed_verbatim() -> None:
    request = GenerationRequest(prompt="Birthday bash", user_id="user-1", seed=4242, randomize_seed=True)
    assert resolve_seed(request) == 4242


def test_resolve_seed_derives_from_prompt_by_default() -> None:
    request = GenerationRequest(prompt="Birthday bash", user_id="user-1")
    assert resolve_seed(request) == 178231


def test_resolve_seed_randomizes_when_asked(monkeypatch) -> None:
    import eventcanvas.generation.seed as seed_module

    monkeypatch.setattr(seed_module.secrets, "randbelow", lambda upper: upper - 1)
    request = GenerationRequest(prompt="Birthday bash", user_id="user-1", randomize_seed=True)
    assert resolve_seed(request) == SEED_MODULUS - 1
