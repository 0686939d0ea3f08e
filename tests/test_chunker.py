"""
Tests for the chunking step.
"""

import math

import pytest

from carrierfit.pipeline.steps.chunker import (
    ChunkerStep,
    reconstruct,
    section_label,
    split_units,
    trailing_words,
)


GUIDE = (
    "Acme Life underwriting guide for agents. Read every section before quoting.\n"
    "Section 1: Eligibility\n"
    "Issue ages 18 through 75 are accepted. Face amounts from $100,000 to $5,000,000 are available. "
    "Applicants over age 60 require a paramedical exam! Are term conversions allowed? Yes.\n"
    "Section 2: Build\n"
    "Use the build chart below. Applicants above the chart are declined.\n"
    "SECTION 3: Tobacco\n"
    "Non-tobacco rates require 24 months without nicotine. Cigar users may qualify occasionally.\n"
    "\n"
    "## Financial Underwriting\n"
    "Income multiples apply above $1,000,000. Net worth statements may be requested.   \n\n"
)


class TestUnitSplitting:
    """Tests for sentence-like unit splitting."""

    def test_units_rebuild_text(self):
        """Test that units are exact consecutive substrings of the text."""
        assert "".join(split_units(GUIDE)) == GUIDE

    def test_splits_on_punctuation_and_newlines(self):
        """Test that sentences and lines become separate units."""
        units = split_units("First sentence. Second one!\nThird line")
        assert units == ["First sentence. ", "Second one!\n", "Third line"]

    def test_decimal_points_do_not_split(self):
        """Test that a period inside a number is not a boundary."""
        assert split_units("BMI up to 32.5 is standard. Next.") == ["BMI up to 32.5 is standard. ", "Next."]


class TestSectionHeaders:
    """Tests for section header recognition."""

    @pytest.mark.parametrize("unit,label", [
        ("Section 1: Eligibility\n", "Section 1: Eligibility"),
        ("SECTION 12: Build Chart\n", "SECTION 12: Build Chart"),
        ("Chapter 3: Medical\n", "Chapter 3: Medical"),
        ("Part IV: Exhibits\n", "Part IV: Exhibits"),
        ("## Financial Underwriting\n", "Financial Underwriting"),
    ])
    def test_recognized_headers(self, unit, label):
        """Test header patterns and the labels taken from them."""
        assert section_label(unit) == label

    @pytest.mark.parametrize("unit", [
        "See section 1 for details. ",
        "Sections apply to all applicants. ",
        "#hashtag\n",
        "   \n",
    ])
    def test_non_headers(self, unit):
        """Test that ordinary text is not treated as a header."""
        assert section_label(unit) is None


class TestChunker:
    """Tests for ChunkerStep."""

    def test_empty_text_yields_no_chunks(self):
        """Test that empty text produces an empty list."""
        assert ChunkerStep(chunk_size=100, overlap=20).execute("doc", "") == []

    @pytest.mark.parametrize("chunk_size,overlap", [(1000, 150), (40, 16), (15, 8), (5, 0)])
    def test_round_trip_reconstructs_text(self, chunk_size, overlap):
        """Test that dropping each overlap prefix rebuilds the original text."""
        chunks = ChunkerStep(chunk_size=chunk_size, overlap=overlap).execute("doc", GUIDE)
        assert reconstruct(chunks) == GUIDE

    def test_round_trip_without_punctuation(self):
        """Test round trip for text with no sentence boundaries at all."""
        text = "word " * 500
        chunks = ChunkerStep(chunk_size=50, overlap=20).execute("doc", text)
        assert len(chunks) == 1
        assert chunks[0].text == text
        assert reconstruct(chunks) == text

    def test_whitespace_only_text_is_one_chunk(self):
        """Test that whitespace-only text still round-trips."""
        chunks = ChunkerStep().execute("doc", "  \n ")
        assert len(chunks) == 1
        assert reconstruct(chunks) == "  \n "

    def test_chunk_ids_derive_from_document_and_sequence(self):
        """Test that chunk ids are a pure function of document id and seq."""
        step = ChunkerStep(chunk_size=15, overlap=8)
        first = step.execute("doc-42", GUIDE)
        second = step.execute("doc-42", GUIDE)

        assert [c.id for c in first] == [f"doc-42-chunk-{i}" for i in range(len(first))]
        assert [c.id for c in first] == [c.id for c in second]
        assert [c.seq for c in first] == list(range(len(first)))

    def test_headers_start_new_chunks_with_labels(self):
        """Test that each header flushes the buffer and sets the section."""
        text = "Intro sentence. Section 1: Eligibility\nAges 18-60. Section 2: Build\nBMI chart."
        chunks = ChunkerStep().execute("doc", text)

        assert [c.text for c in chunks] == [
            "Intro sentence. ",
            "Section 1: Eligibility\nAges 18-60. ",
            "Section 2: Build\nBMI chart.",
        ]
        assert [c.section for c in chunks] == [None, "Section 1: Eligibility", "Section 2: Build"]
        assert all(c.overlap_chars == 0 for c in chunks)

    def test_size_flush_seeds_overlap_from_previous_chunk(self):
        """Test that a size-triggered chunk starts with the tail of the previous one."""
        sentence = "Applicants must disclose all prior applications. "
        chunks = ChunkerStep(chunk_size=30, overlap=16).execute("doc", sentence * 6)

        assert len(chunks) > 1
        for previous, current in zip(chunks, chunks[1:]):
            assert current.overlap_chars > 0
            prefix = current.text[:current.overlap_chars]
            assert previous.text.endswith(prefix)
            # overlap // 4 words are carried over
            assert len(prefix.split()) == 4

    def test_chunks_respect_target_size(self):
        """Test that multi-unit chunks stay within the target token estimate."""
        sentence = "Applicants must disclose all prior applications. "
        chunks = ChunkerStep(chunk_size=30, overlap=16).execute("doc", sentence * 10)
        assert all(c.token_count <= 30 for c in chunks)

    def test_oversized_sentence_kept_whole(self):
        """Test that a unit longer than the target is emitted untruncated."""
        long_sentence = "exclusion " * 120 + "applies."
        text = "Short intro. " + long_sentence
        chunks = ChunkerStep(chunk_size=50, overlap=16).execute("doc", text)

        assert len(chunks) == 2
        assert chunks[1].body == long_sentence
        assert chunks[1].token_count > 50

    def test_section_carried_to_size_split_chunks(self):
        """Test that chunks split by size keep the active section label."""
        text = "Section 7: Medical\n" + "Diabetes requires an A1C under 8. " * 20
        chunks = ChunkerStep(chunk_size=40, overlap=8).execute("doc", text)

        assert len(chunks) > 1
        assert all(c.section == "Section 7: Medical" for c in chunks)

    def test_token_count_estimate(self):
        """Test that token counts are ceil(len / 4)."""
        chunks = ChunkerStep(chunk_size=15, overlap=8).execute("doc", GUIDE)
        assert all(c.token_count == math.ceil(len(c.text) / 4) for c in chunks)


class TestTrailingWords:
    """Tests for overlap extraction."""

    def test_returns_exact_suffix(self):
        """Test that the overlap keeps the original spacing."""
        assert trailing_words("one  two\tthree four ", 2) == "three four "

    def test_fewer_words_than_requested(self):
        """Test that short text is returned from its first word."""
        assert trailing_words("  alpha beta", 10) == "alpha beta"

    def test_zero_words(self):
        """Test that zero overlap yields an empty prefix."""
        assert trailing_words("alpha beta", 0) == ""
