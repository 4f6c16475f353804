"""In-memory backend and fixture models shared by the unit tests."""

from collections.abc import Callable, Mapping
from typing import Any

from docgraph.buffer import Buffer
from docgraph.enums import LinkType
from docgraph.model import Model
from docgraph.schema import Schema


def _same(value: Any, expected: Any) -> bool:
    if value is None or expected is None:
        return value is expected
    return str(value) == str(expected)


def _matches(row: Mapping[str, Any], conditions: Mapping[str, Any]) -> bool:
    for field, expected in conditions.items():
        value = row.get(field)
        if isinstance(expected, (list, tuple)):
            if not any(_same(value, item) for item in expected):
                return False
        elif not _same(value, expected):
            return False
    return True


class FakeQuery(Buffer):
    """Query object over rows matched by a FakeSchema."""

    def __init__(self, schema: "FakeSchema", rows: list[dict[str, Any]]) -> None:
        super().__init__(rows)
        self._schema = schema

    async def get(self, fetch_options: Mapping[str, Any] | None = None) -> Any:
        fetch_options = fetch_options or {}
        rows = [dict(row) for row in self._collection]
        if fetch_options.get("return") == "object":
            return rows
        return self._schema.model.create(rows, type="set", exists=True)


class FakeSchema(Schema):
    """Schema storing rows in memory and recording every write."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.rows: list[dict[str, Any]] = []
        self.inserted: list[dict[str, Any]] = []
        self.updated: list[dict[str, Any]] = []
        self.truncated: list[dict[str, Any]] = []
        self.queries: list[dict[str, Any]] = []
        self._next_id = 1

    def seed(self, *rows: dict[str, Any]) -> "FakeSchema":
        for row in rows:
            self.rows.append(dict(row))
            self._next_id = max(self._next_id, int(row.get(self.key) or 0) + 1)
        return self

    def query(self, options: Mapping[str, Any] | None = None) -> FakeQuery:
        query = dict((options or {}).get("query", {}))
        self.queries.append(query)
        conditions = query.get("conditions", {})
        return FakeQuery(self, [row for row in self.rows if _matches(row, conditions)])

    async def bulk_insert(self, inserts: list[Any], extractor: Callable[[Any], dict[str, Any]]) -> bool:
        for entity in inserts:
            data = extractor(entity)
            if data.get(self.key) is None:
                data[self.key] = self._next_id
                self._next_id += 1
            self.rows.append(data)
            self.inserted.append(data)
            entity.sync(data[self.key], exists=True)
        return True

    async def bulk_update(self, updates: list[Any], extractor: Callable[[Any], dict[str, Any]]) -> bool:
        for entity in updates:
            data = extractor(entity)
            for row in self.rows:
                if _same(row.get(self.key), data.get(self.key)):
                    row.update(data)
            self.updated.append(data)
            entity.sync(exists=True)
        return True

    async def truncate(self, conditions: Mapping[str, Any] | None = None) -> bool:
        conditions = dict(conditions or {})
        self.truncated.append(conditions)
        self.rows = [row for row in self.rows if not _matches(row, conditions)]
        return True


class Gallery(Model):
    schema_class = FakeSchema

    @classmethod
    def _define(cls, schema: Schema) -> None:
        schema.column("id", {"type": "serial"})
        schema.column("name", {"type": "string"})
        schema.column("tag_ids", {"type": "integer", "array": True, "default": []})

        schema.has_one("detail", "GalleryDetail", keys={"id": "gallery_id"})
        schema.has_many("images", "Image", keys={"id": "gallery_id"})
        schema.has_many("tags", "Tag", keys={"tag_ids": "id"}, link=LinkType.KEY_LIST)


class GalleryDetail(Model):
    schema_class = FakeSchema

    @classmethod
    def _define(cls, schema: Schema) -> None:
        schema.column("id", {"type": "serial"})
        schema.column("description", {"type": "string"})

        schema.belongs_to("gallery", "Gallery", keys={"gallery_id": "id"})


class Image(Model):
    schema_class = FakeSchema

    @classmethod
    def _define(cls, schema: Schema) -> None:
        schema.column("id", {"type": "serial"})
        schema.column("gallery_id", {"type": "integer"})
        schema.column("name", {"type": "string"})
        schema.column("title", {"type": "string", "length": 50})
        schema.column("score", {"type": "float"})

        schema.belongs_to("gallery", "Gallery", keys={"gallery_id": "id"})
        schema.has_many("images_tags", "ImageTag", keys={"id": "image_id"})
        schema.has_many_through("tags", "images_tags", "tag")


class ImageTag(Model):
    schema_class = FakeSchema

    @classmethod
    def _define(cls, schema: Schema) -> None:
        schema.column("id", {"type": "serial"})
        schema.column("image_id", {"type": "integer"})
        schema.column("tag_id", {"type": "integer"})

        schema.belongs_to("image", "Image", keys={"image_id": "id"})
        schema.belongs_to("tag", "Tag", keys={"tag_id": "id"})


class Tag(Model):
    schema_class = FakeSchema

    @classmethod
    def _define(cls, schema: Schema) -> None:
        schema.column("id", {"type": "serial"})
        schema.column("name", {"type": "string", "length": 50})

        schema.has_many("images_tags", "ImageTag", keys={"id": "tag_id"})
        schema.has_many_through("images", "images_tags", "image")
