"""Tests for feedsense.keywords."""

from unittest.mock import patch

from feedsense.keywords import extract_top_keyword


class TestExtractTopKeyword:
    @patch("feedsense.keywords.jieba.analyse.extract_tags")
    def test_returns_top_term(self, mock_extract) -> None:
        mock_extract.return_value = ["人工智能"]
        assert extract_top_keyword("人工智能的最新进展") == "人工智能"
        mock_extract.assert_called_once_with("人工智能的最新进展", topK=1)

    @patch("feedsense.keywords.jieba.analyse.extract_tags")
    def test_term_equal_to_query_is_none(self, mock_extract) -> None:
        mock_extract.return_value = ["Python"]
        assert extract_top_keyword("python") is None

    @patch("feedsense.keywords.jieba.analyse.extract_tags")
    def test_no_terms_is_none(self, mock_extract) -> None:
        mock_extract.return_value = []
        assert extract_top_keyword("的") is None

    @patch("feedsense.keywords.jieba.analyse.extract_tags")
    def test_blank_term_is_none(self, mock_extract) -> None:
        mock_extract.return_value = ["  "]
        assert extract_top_keyword("some query") is None

    @patch("feedsense.keywords.jieba.analyse.extract_tags")
    def test_failure_is_none(self, mock_extract) -> None:
        mock_extract.side_effect = RuntimeError("dictionary missing")
        assert extract_top_keyword("some query") is None
