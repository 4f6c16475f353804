"""Unit tests for the HasOne relationship."""

import pytest

from docgraph.exceptions import ExternalRelationRequiresFetch

from fakes import Gallery, GalleryDetail


@pytest.fixture
def detail_schema():
    return GalleryDetail.definition()


class TestHasOneEmbed:
    """Tests for eager loading the owned entity."""

    async def test_embed_attaches_the_related_entity(self, gallery_schema, detail_schema) -> None:
        gallery_schema.seed({"id": 1, "name": "Foo"}, {"id": 2, "name": "Bar"})
        detail_schema.seed({"id": 1, "gallery_id": 1, "description": "Foo gallery"})
        galleries = await Gallery.all()

        await galleries.embed("detail")

        assert galleries.get(0).get("detail").get("description") == "Foo gallery"
        assert not galleries.get(1).has("detail")
        assert detail_schema.queries == [{"conditions": {"gallery_id": [1, 2]}}]

    async def test_missing_relation_requires_a_fetch(self, gallery_schema, detail_schema) -> None:
        gallery_schema.seed({"id": 1, "name": "Foo"})
        gallery = await Gallery.load(1)

        with pytest.raises(ExternalRelationRequiresFetch):
            gallery.get("detail")

    async def test_fetch_loads_the_relation(self, gallery_schema, detail_schema) -> None:
        gallery_schema.seed({"id": 1, "name": "Foo"})
        detail_schema.seed({"id": 3, "gallery_id": 1, "description": "Foo gallery"})
        gallery = await Gallery.load(1)

        detail = await gallery.fetch("detail")

        assert detail.id == 3
        assert gallery.get("detail") is detail


class TestHasOneSave:
    """Tests for saving the owned entity after its owner."""

    async def test_related_entity_gets_the_owner_key(self, gallery_schema, detail_schema) -> None:
        gallery = Gallery.create({"name": "Foo", "detail": {"description": "Foo gallery"}})

        assert await gallery.save()

        assert gallery_schema.inserted == [{"id": 1, "name": "Foo", "tag_ids": []}]
        assert detail_schema.inserted == [{"id": 1, "description": "Foo gallery", "gallery_id": 1}]
        assert gallery.get("detail").get("gallery_id") == 1
