"""
Unit tests for PKCE helpers and state (CSRF) helpers.


These tests are CI-safe (no network), cover:
* Code-verifier / S256 challenge generation
* State build / parse happy-path
* Signature tamper detection and foreign secrets
"""

from __future__ import annotations

import base64
import re
from hashlib import sha256

import pytest

from myshoppinghelp.auth.pkce import code_challenge_s256, generate_code_verifier
from myshoppinghelp.auth.state import InvalidStateError, build_state, parse_state


ALLOWED_CHARS_RE = re.compile(r"^[A-Za-z0-9\-._~]+$")  # RFC-7636


# --------------------------------------------------------------------------- #
# PKCE                                                                        #
# --------------------------------------------------------------------------- #
def test_generate_code_verifier_default_length() -> None:
    verifier = generate_code_verifier()
    assert len(verifier) == 64
    assert ALLOWED_CHARS_RE.match(verifier), "Verifier contains non-RFC chars"


def test_generate_code_verifier_is_random() -> None:
    assert generate_code_verifier() != generate_code_verifier()


def test_generate_code_verifier_invalid_len() -> None:
    with pytest.raises(ValueError):
        _ = generate_code_verifier(42)  # below minimum
    with pytest.raises(ValueError):
        _ = generate_code_verifier(129)  # above maximum


def test_code_challenge_s256_matches_reference() -> None:
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    # RFC-7636 appendix B
    assert code_challenge_s256(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_code_challenge_has_no_padding() -> None:
    verifier = generate_code_verifier()
    digest = sha256(verifier.encode("ascii")).digest()
    expected = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    challenge = code_challenge_s256(verifier)
    assert challenge == expected
    assert not challenge.endswith("=")


# --------------------------------------------------------------------------- #
# STATE BUILD / PARSE                                                         #
# --------------------------------------------------------------------------- #
def fake_clock() -> float:  # frozen at 2023-01-01T00:00:00Z
    return 1_672_531_200.0


def test_state_round_trip() -> None:
    flow_id = "3f2a9c01d4e5b6a7"
    secret = "super-secret"
    state = build_state(flow_id, secret, clock=fake_clock)
    parsed_flow_id, ts = parse_state(state, secret)
    assert parsed_flow_id == flow_id
    assert ts == int(fake_clock())


def test_state_is_url_safe() -> None:
    state = build_state("flow", "secret", clock=fake_clock)
    assert re.match(r"^[A-Za-z0-9_-]+$", state)


def test_state_tamper_detection() -> None:
    secret = "super-secret"
    raw_state = build_state("3f2a9c01d4e5b6a7", secret, clock=fake_clock)

    decoded = base64.urlsafe_b64decode(raw_state + "=" * (-len(raw_state) % 4)).decode()
    flow_id, ts, sig = decoded.split(":")
    forged_sig = ("0" if sig[0] != "0" else "1") + sig[1:]
    forged = base64.urlsafe_b64encode(f"{flow_id}:{ts}:{forged_sig}".encode()).decode()

    with pytest.raises(InvalidStateError):
        parse_state(forged.rstrip("="), secret)


def test_state_from_other_secret_rejected() -> None:
    state = build_state("flow", "secret-a", clock=fake_clock)
    with pytest.raises(InvalidStateError):
        parse_state(state, "secret-b")


@pytest.mark.parametrize("state", ["", "!!!", "Zm9vOmJhcg"])  # "foo:bar"
def test_state_malformed(state: str) -> None:
    with pytest.raises(InvalidStateError):
        parse_state(state, "secret")
