import io
import re
import wave

import pytest

from chat_relay.utils import generate_session_id, resolve_session_id
from chat_relay.utils.audio import is_raw_pcm, parse_pcm_rate, pcm_to_wav


def test_generated_session_id_shape():
    session_id = generate_session_id(now_ms=1_700_000_000_000)

    assert re.fullmatch(r"session_1700000000000_[0-9a-z]{9}", session_id)
    assert generate_session_id() != generate_session_id()


@pytest.mark.parametrize("candidate", [None, "", "   "])
def test_missing_session_id_is_minted(candidate):
    assert resolve_session_id(candidate).startswith("session_")


def test_supplied_session_id_is_kept_verbatim():
    assert resolve_session_id("my-own-token") == "my-own-token"


@pytest.mark.parametrize(
    ("mime_type", "expected"),
    [
        ("audio/L16;codec=pcm;rate=24000", True),
        ("audio/pcm", True),
        ("audio/wav", False),
        ("audio/mpeg", False),
    ],
)
def test_is_raw_pcm(mime_type, expected):
    assert is_raw_pcm(mime_type) is expected


def test_parse_pcm_rate_falls_back_to_default():
    assert parse_pcm_rate("audio/L16;rate=16000") == 16000
    assert parse_pcm_rate("audio/L16") == 24000


def test_pcm_to_wav_drops_partial_frame():
    wav_bytes = pcm_to_wav(b"\x01\x02\x03", 8000)

    with wave.open(io.BytesIO(wav_bytes), "rb") as wav:
        assert wav.getframerate() == 8000
        assert wav.getsampwidth() == 2
        assert wav.getnframes() == 1
