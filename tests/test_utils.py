# tests/test_utils.py
"""
Tests for token estimation and JSON sanitizing helpers.
"""

from datetime import datetime, timezone

import pytest

from tandem.config.schema import TruncationStrategy
from tandem.utils.serialization import json_safe
from tandem.utils.text import TokenEstimator


class TestTokenEstimator:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [(None, 0), ("", 0), ("a", 1), ("abcd", 1), ("abcde", 2), ("Hello, world!", 4)],
    )
    def test_count(self, text, expected):
        assert TokenEstimator().count(text) == expected

    def test_chars_per_token(self):
        assert TokenEstimator(chars_per_token=2).count("abcde") == 3

    def test_invalid_chars_per_token(self):
        with pytest.raises(ValueError):
            TokenEstimator(chars_per_token=0)

    def test_truncate_keeps_tail(self):
        truncated = TokenEstimator().truncate("A" * 100, max_tokens=10)

        assert truncated == "[...truncated] " + "A" * 24
        assert TokenEstimator().count(truncated) <= 10

    def test_truncate_keeps_head(self):
        truncated = TokenEstimator().truncate("abcdefgh" * 10, max_tokens=5, keep="head")

        assert truncated == "abcd[...truncated] "

    def test_fitting_text_unchanged(self):
        assert TokenEstimator().truncate("short", max_tokens=10) == "short"

    def test_marker_does_not_fit(self):
        assert TokenEstimator().truncate("A" * 100, max_tokens=2) == ""

    def test_tiktoken_failure_falls_back(self, monkeypatch, caplog):
        estimator = TokenEstimator(method="tiktoken")

        def broken():
            raise RuntimeError("no encoding")

        monkeypatch.setattr(estimator, "_get_encoder", broken)

        assert estimator.count("abcdefgh") == 2
        assert "using estimation" in caplog.text


class TestJsonSafe:
    def test_plain_values(self):
        assert json_safe({"a": [1, 2.5, True, None, "x"]}) == {"a": [1, 2.5, True, None, "x"]}

    def test_special_values(self):
        moment = datetime(2024, 1, 1, tzinfo=timezone.utc)

        converted = json_safe(
            {"when": moment, "how": TruncationStrategy.RECENT, "what": object, "pair": (1, 2)},
        )

        assert converted["when"] == "2024-01-01T00:00:00+00:00"
        assert converted["how"] == "recent"
        assert converted["what"] == str(object)
        assert converted["pair"] == [1, 2]

    def test_circular_list(self, caplog):
        items: list = [1]
        items.append(items)

        assert json_safe({"items": items}) == {"items": [1]}
        assert "$.items[1]" in caplog.text

    def test_self_referencing_root(self):
        root: dict = {}
        root["me"] = root

        assert json_safe(root) == {}

    def test_shared_references_kept(self):
        shared = {"k": 1}

        assert json_safe({"a": shared, "b": shared}) == {"a": {"k": 1}, "b": {"k": 1}}
