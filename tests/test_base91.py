"""Tests for the basE91 text codec."""

import random

import pytest

from brewery.codec import base91
from brewery.errors import DecodeError, InvalidEncodingSymbol


class TestAlphabet:
    """Test the encoding alphabet."""

    def test_alphabet_has_91_unique_symbols(self):
        assert len(base91.ALPHABET) == 91
        assert len(set(base91.ALPHABET)) == 91

    def test_decode_table_inverts_alphabet(self):
        assert len(base91._DECODE_TABLE) == 91
        assert all(base91._DECODE_TABLE[ch] == i for i, ch in enumerate(base91.ALPHABET))

    def test_alphabet_is_safe_for_text_documents(self):
        for unsafe in ('"', "'", "\\", " ", "\n", "\t"):
            assert unsafe not in base91.ALPHABET


class TestRoundTrip:
    """Test that decode(encode(b)) == b."""

    def test_empty(self):
        assert base91.encode(b"") == ""
        assert base91.decode("") == b""

    def test_every_byte_value(self):
        data = bytes(range(256))
        assert base91.decode(base91.encode(data)) == data

    def test_nul_and_high_bytes(self):
        data = b"\x00\x00\xff\x00\x80\xfe"
        assert base91.decode(base91.encode(data)) == data

    @pytest.mark.parametrize("size", [1, 2, 3, 7, 13, 14, 64, 1000])
    def test_random_lengths(self, size):
        rng = random.Random(size)
        data = bytes(rng.randrange(256) for _ in range(size))
        assert base91.decode(base91.encode(data)) == data

    def test_output_only_uses_alphabet(self):
        text = base91.encode(bytes(range(256)) * 3)
        assert set(text) <= set(base91.ALPHABET)

    def test_known_vector(self):
        # classic basE91 gives 'fPNKd' for b"test"; none of its symbols differ here
        assert base91.encode(b"test") == "fPNKd"


class TestStreaming:
    """Test the incremental encoder and decoder."""

    def test_chunked_encode_matches_one_shot(self):
        data = bytes(range(200))
        encoder = base91.Base91Encoder()
        text = "".join(encoder.update(data[i:i + 7]) for i in range(0, len(data), 7))
        text += encoder.finish()
        assert text == base91.encode(data)

    def test_chunked_decode_matches_one_shot(self):
        data = bytes(range(255, -1, -1))
        text = base91.encode(data)
        decoder = base91.Base91Decoder()
        out = b"".join(decoder.update(text[i:i + 5]) for i in range(0, len(text), 5))
        out += decoder.finish()
        assert out == data


class TestInvalidInput:
    """Test decoding of malformed text."""

    def test_symbol_outside_alphabet(self):
        with pytest.raises(InvalidEncodingSymbol) as info:
            base91.decode('AB"CD')
        assert info.value.symbol == '"'
        assert info.value.position == 2

    def test_invalid_symbol_is_a_decode_error(self):
        with pytest.raises(DecodeError):
            base91.decode("abc def")
