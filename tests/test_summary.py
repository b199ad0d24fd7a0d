"""Tests for iteration summary extraction."""

from iterforge.summary import KeywordSummaryExtractor


class TestKeywordSummaryExtractor:
    """Tests for KeywordSummaryExtractor."""

    def test_empty_output(self):
        extractor = KeywordSummaryExtractor()
        assert extractor.extract("") == "No output"
        assert extractor.extract("  \n\n ") == "No output"

    def test_picks_action_line(self):
        output = "Looking at the code.\nThe parser was wrong.\n- Fixed the off-by-one in tokenize()\nDone."
        assert KeywordSummaryExtractor().extract(output) == "Fixed the off-by-one in tokenize()"

    def test_skips_filler_openers(self):
        output = "Let me check what was created.\nI added logging first.\n* Updated config loader"
        assert KeywordSummaryExtractor().extract(output) == "Updated config loader"

    def test_falls_back_to_first_line(self):
        output = "\n  Nothing to report here\nstill nothing"
        assert KeywordSummaryExtractor().extract(output) == "Nothing to report here"

    def test_only_scans_early_lines(self):
        lines = [f"line {i}" for i in range(12)] + ["Implemented feature"]
        assert KeywordSummaryExtractor().extract("\n".join(lines)) == "line 0"

    def test_truncates_long_lines(self):
        summary = KeywordSummaryExtractor().extract("Created " + "x" * 200)
        assert len(summary) == 103
        assert summary.endswith("...")
