"""
Tests for the boundary cascade chunker.

Tests cover:
- Short text returned as a single trimmed chunk
- Paragraph packing with the "\n\n" separator
- Sentence and clause fallbacks
- Forced slices for text without punctuation or whitespace
- Byte ceiling with multi-byte characters
- Order preservation and the size invariants on every chunk
- Input errors
"""
import pytest

from podcast_tts.core.errors import InputError
from podcast_tts.tts.chunker import (
    ChunkResult,
    TextChunk,
    chunk_text,
    force_slices,
    split_clauses,
    split_paragraphs,
    split_sentences,
)

SENTENCE = "Lorem ipsum dolor sit amet."   # 27 characters


def _paragraph(sentences: int = 10) -> str:
    return " ".join([SENTENCE] * sentences)


def _assert_invariants(result: ChunkResult, max_bytes: int = 5000) -> None:
    assert result.chunks, "at least one chunk"
    for i, chunk in enumerate(result.chunks):
        assert chunk.index == i
        assert chunk.text
        assert chunk.text == chunk.text.strip()
        assert len(chunk.text) <= result.safe_size
        assert 0 < chunk.byte_length <= max_bytes
        assert chunk.byte_length == len(chunk.text.encode("utf-8"))


class TestTextChunk:

    def test_byte_length_computed(self):
        chunk = TextChunk(index=0, text="café")
        assert chunk.byte_length == 5

    def test_empty_text_rejected(self):
        with pytest.raises(ValueError):
            TextChunk(index=0, text="")


class TestSplitters:

    def test_split_paragraphs(self):
        assert split_paragraphs("a\n\nb\n  \n c") == ["a", "b", "c"]

    def test_split_sentences(self):
        assert split_sentences("One. Two? Three! Four") == ["One.", "Two?", "Three!", "Four"]

    def test_split_clauses(self):
        assert split_clauses("one, two; three: four") == ["one,", "two;", "three:", "four"]


class TestShortText:

    def test_single_chunk_is_trimmed_text(self):
        result = chunk_text("  Hello world.  \n")
        assert result.texts == ["Hello world."]
        assert result.safe_size == 700

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
    def test_blank_text_raises(self, text):
        with pytest.raises(InputError):
            chunk_text(text)

    def test_bad_parameters_raise(self):
        with pytest.raises(ValueError):
            chunk_text("text", target_size=0)


class TestCascade:

    def test_paragraphs_are_packed(self):
        """Two 279-char paragraphs fit in 700 characters, three do not."""
        para = _paragraph()
        assert len(para) == 279
        text = "\n\n".join([para] * 5)

        result = chunk_text(text)

        assert len(result.chunks) == 3
        assert result.chunks[0].text == para + "\n\n" + para
        assert result.chunks[2].text == para
        _assert_invariants(result)

    def test_long_paragraph_falls_back_to_sentences(self):
        text = _paragraph(60)  # 1679 characters, one paragraph
        result = chunk_text(text)

        _assert_invariants(result)
        assert len(result.chunks) > 1
        for chunk in result.chunks:
            assert chunk.text.endswith(".")
        assert " ".join(result.texts) == text

    def test_split_paragraph_keeps_break_after_previous_paragraph(self):
        text = "Intro." + "\n\n" + _paragraph(60)
        result = chunk_text(text)

        _assert_invariants(result)
        assert result.chunks[0].text.startswith("Intro.\n\n" + SENTENCE + " " + SENTENCE)
        assert "Intro. " not in result.chunks[0].text

    def test_long_sentence_falls_back_to_clauses(self):
        clause = "this clause carries on for a while"
        text = ", ".join([clause] * 40) + "."
        result = chunk_text(text)

        _assert_invariants(result)
        assert len(result.chunks) > 1
        assert " ".join(result.texts) == text

    def test_order_preserved(self):
        text = " ".join(f"Sentence number {i} ends here." for i in range(200))
        result = chunk_text(text)
        joined = " ".join(result.texts)
        positions = [joined.index(f"number {i} ") for i in range(200)]
        assert positions == sorted(positions)


class TestForcedSlices:

    def test_twelve_thousand_chars_without_punctuation(self):
        text = "a" * 12000
        result = chunk_text(text)

        _assert_invariants(result)
        # 19 full fragments of 630 + 1 period; the 30-char tail packs into the last chunk
        assert len(result.chunks) == 19
        assert "".join(result.texts).replace(".", "").replace(" ", "") == text

    def test_fragments_end_with_period(self):
        fragments = list(force_slices("word " * 500, safe_size=700, max_bytes=5000))
        assert all(f.endswith(".") for f in fragments)
        assert all(len(f) <= 631 for f in fragments)

    def test_cut_prefers_whitespace(self):
        text = ("abcdefghij " * 200).strip()
        fragments = list(force_slices(text, safe_size=700, max_bytes=5000))
        for fragment in fragments:
            body = fragment.rstrip(".")
            assert body.split(" ")[-1] == "abcdefghij"

    def test_multibyte_respects_byte_ceiling(self):
        text = "é" * 3000
        result = chunk_text(text, max_bytes=500)

        _assert_invariants(result, max_bytes=500)
        assert "".join(c.text.rstrip(".") for c in result.chunks) == text

    def test_every_round_consumes_text(self):
        # A 4-byte character with a tiny ceiling still terminates
        fragments = list(force_slices("😀" * 10, safe_size=10, max_bytes=6))
        assert "".join(f.rstrip(".") for f in fragments) == "😀" * 10


class TestByteInvariant:

    @pytest.mark.parametrize("char", ["a", "é", "中", "😀"])
    def test_no_chunk_exceeds_max_bytes(self, char):
        text = (char * 90 + " ") * 150
        result = chunk_text(text)
        _assert_invariants(result)
