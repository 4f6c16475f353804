"""Unit tests for the Collector identity map."""

import pytest

from docgraph.collector import Collector
from docgraph.document import Document
from docgraph.exceptions import MissingCollectedData


class TestCollector:
    """Tests for set/get/has/remove."""

    def test_set_and_get(self) -> None:
        document = Document({"id": 1})
        collector = Collector().set("image", 1, document)

        assert collector.has("image", 1)
        assert collector.get("image", 1) is document

    def test_ids_are_compared_as_strings(self) -> None:
        collector = Collector().set("image", 1, "data")
        assert collector.get("image", "1") == "data"

    def test_sources_are_isolated(self) -> None:
        collector = Collector().set("image", 1, "data")
        assert not collector.has("gallery", 1)

    def test_missing_data_raises(self) -> None:
        with pytest.raises(MissingCollectedData, match="`'image'`"):
            Collector().get("image", 1)

    def test_remove(self) -> None:
        collector = Collector().set("image", 1, "data")
        collector.remove("image", 1)
        assert not collector.has("image", 1)
