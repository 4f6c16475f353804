"""Unit tests for Schema casting and export formatters."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from docgraph.collection import Collection, Through
from docgraph.document import Document
from docgraph.enums import FormatMode
from docgraph.exceptions import BackendNotImplemented, InvalidDate, InvalidFormatMode, MissingSchemaDefinition
from docgraph.schema import Schema
from fakes import Gallery, Image, Tag


def _make_schema() -> Schema:
    schema = Schema()
    schema.column("id", {"type": "serial"})
    schema.column("age", {"type": "integer"})
    schema.column("ratio", {"type": "float"})
    schema.column("price", {"type": "decimal", "precision": 2})
    schema.column("active", {"type": "boolean"})
    schema.column("born", {"type": "date"})
    schema.column("created", {"type": "datetime"})
    schema.column("payload", {"type": "json"})
    schema.column("scores", {"type": "integer", "array": True})
    return schema


class TestScalarCasting:
    """Tests for the cast formatters."""

    def test_numbers(self) -> None:
        schema = _make_schema()

        assert schema.cast("id", "7") == 7
        assert schema.cast("age", "12") == 12
        assert schema.cast("age", "12.8") == 12
        assert schema.cast("age", "abc") is None
        assert schema.cast("ratio", "1.5") == 1.5
        assert schema.cast("price", "3.14159") == Decimal("3.14")

    def test_booleans(self) -> None:
        schema = _make_schema()

        assert schema.cast("active", "1") is True
        assert schema.cast("active", "0") is False
        assert schema.cast("active", "false") is False
        assert schema.cast("active", "") is False
        assert schema.cast("active", 1) is True

    def test_dates(self) -> None:
        schema = _make_schema()

        assert schema.cast("born", "2014-10-26") == date(2014, 10, 26)
        assert schema.cast("created", "2014-10-26 00:25:15") == datetime(2014, 10, 26, 0, 25, 15)
        assert schema.cast("created", date(2014, 10, 26)) == datetime(2014, 10, 26)
        assert schema.cast("born", "not a date") is None

    def test_json(self) -> None:
        assert _make_schema().cast("payload", '{"a": [1, 2]}') == {"a": [1, 2]}

    def test_none_stays_none(self) -> None:
        assert _make_schema().cast("age", None) is None

    def test_array_columns_become_collections(self) -> None:
        scores = _make_schema().cast("scores", ["1", "2"])

        assert isinstance(scores, Collection)
        assert scores.get() == [1, 2]

    def test_locked_schema_rejects_unknown_fields(self) -> None:
        with pytest.raises(MissingSchemaDefinition):
            _make_schema().cast("unknown", 1)

    def test_unlocked_schema_wraps_unknown_structures(self) -> None:
        schema = Schema(locked=False)

        assert isinstance(schema.cast("a", {"b": 1}), Document)
        assert isinstance(schema.cast("a", [1]), Collection)
        assert schema.cast("a", 1) == 1

    def test_cast_without_name_builds_an_entity(self) -> None:
        image = Image.definition().cast(None, {"id": "1", "name": "amiga_1200.jpg"})

        assert isinstance(image, Image)
        assert image.get("id") == 1


class TestRelationCasting:
    """Tests for data cast through relations."""

    def test_belongs_to_builds_the_related_entity(self) -> None:
        gallery = Image.definition().cast("gallery", {"name": "Foo"})
        assert isinstance(gallery, Gallery)

    def test_has_many_builds_a_collection(self) -> None:
        images = Gallery.definition().cast("images", [{"name": "a"}, {"name": "b"}])

        assert isinstance(images, Collection)
        assert all(isinstance(image, Image) for image in images)

    def test_has_many_through_builds_a_through(self) -> None:
        image = Image.create()
        tags = Image.definition().cast("tags", [{"name": "a"}], parent=image)

        assert isinstance(tags, Through)
        assert isinstance(tags.get(0), Tag)

    def test_missing_single_relation_is_none(self) -> None:
        assert Image.definition().cast("gallery", None) is None

    def test_entities_are_kept_as_is(self) -> None:
        gallery = Gallery.create({"name": "Foo"})
        assert Image.definition().cast("gallery", gallery) is gallery

    def test_exists_is_given_to_created_entities(self) -> None:
        gallery = Image.definition().cast("gallery", {"id": 1}, exists=True)
        assert gallery.exists


class TestFormatters:
    """Tests for format/convert/formatter."""

    def test_array_export(self) -> None:
        schema = _make_schema()

        assert schema.format("array", "age", "3") == 3
        assert schema.format("array", "price", Decimal("1.5")) == "1.50"
        assert schema.format("array", "born", date(2014, 10, 26)) == "2014-10-26"
        assert schema.format("array", "created", datetime(2014, 10, 26, 0, 25, 15)) == "2014-10-26 00:25:15"
        assert schema.format("array", "age", None) is None

    def test_datasource_export(self) -> None:
        schema = _make_schema()

        assert schema.format("datasource", "age", 12) == "12"
        assert schema.format("datasource", "active", "0") is False
        assert schema.format("datasource", "payload", {"a": 1}) == '{"a": 1}'

    def test_export_formats_follow_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCGRAPH_DATE_FORMAT", "%d/%m/%Y")
        assert _make_schema().format("array", "born", "2014-10-26") == "26/10/2014"

    def test_invalid_dates_raise_on_export(self) -> None:
        with pytest.raises(InvalidDate, match="not a date"):
            _make_schema().format("array", "born", "not a date")

    def test_cast_mode_is_reserved(self) -> None:
        with pytest.raises(InvalidFormatMode):
            _make_schema().format(FormatMode.CAST, "age", 1)

    def test_custom_formatter(self) -> None:
        schema = _make_schema()
        schema.formatter("array", "integer", lambda value, column=None: f"#{value}")

        assert schema.format("array", "age", 3) == "#3"
        assert schema.formatter("array", "integer")(4) == "#4"

    def test_convert_falls_back_to_the_value(self) -> None:
        assert Schema().convert("array", "unknown", "value") == "value"
        assert Schema().convert("datasource", "unknown", 1) == "1"

    def test_formatters_table(self) -> None:
        assert {"cast", "array", "datasource"} <= set(Schema().formatters())


class TestBackendMethods:
    """Tests for the operations a backend must provide."""

    def test_query_requires_backend(self) -> None:
        with pytest.raises(BackendNotImplemented, match="Missing `query\\(\\)` implementation"):
            Schema().query()

    async def test_writes_require_backend(self) -> None:
        schema = Schema()
        with pytest.raises(BackendNotImplemented):
            await schema.bulk_insert([], lambda entity: {})
        with pytest.raises(BackendNotImplemented):
            await schema.bulk_update([], lambda entity: {})
        with pytest.raises(BackendNotImplemented):
            await schema.truncate()
        with pytest.raises(NotImplementedError):
            await schema.remove()
