"""Unit tests for the base relationship behavior."""

import pytest

from docgraph.conventions import Conventions
from docgraph.enums import LinkType, RelationKind
from docgraph.exceptions import ExternalRelationRequiresFetch, InvalidRelationConfig, MissingKeyForMatch
from docgraph.relationship import BelongsTo, HasMany, HasManyThrough, HasOne
from fakes import Gallery, GalleryDetail, Image, ImageTag, Tag


class TestRelationshipConstruction:
    """Tests for options and naming defaults."""

    def test_from_is_required(self) -> None:
        with pytest.raises(InvalidRelationConfig, match="`'from'` option can't be empty"):
            HasMany(to_model=Image)

    def test_to_is_required(self) -> None:
        with pytest.raises(InvalidRelationConfig, match="`'to'` option can't be empty"):
            HasMany(from_model=Gallery)

    def test_has_many_default_keys(self) -> None:
        relation = HasMany(from_model=Gallery, to_model=Image)

        assert relation.keys == {"id": "gallery_id"}
        assert relation.from_key == "id"
        assert relation.to_key == "gallery_id"
        assert relation.name == "image"

    def test_belongs_to_default_keys(self) -> None:
        relation = BelongsTo(from_model=Image, to_model=Gallery)
        assert relation.keys == {"gallery_id": "id"}

    def test_custom_conventions(self) -> None:
        conventions = Conventions({"key": lambda: "_id"})
        relation = HasOne(from_model=Gallery, to_model=GalleryDetail, conventions=conventions)

        assert relation.keys == {"_id": "gallery_id"}

    def test_to_model_is_resolved_by_name(self) -> None:
        relation = BelongsTo(from_model=Image, to_model="Gallery")
        assert relation.to_model is Gallery

    def test_kind_and_link(self) -> None:
        relation = HasMany(from_model=Gallery, to_model=Tag, keys={"tag_ids": "id"}, link="keylist")

        assert relation.kind is RelationKind.HAS_MANY
        assert relation.link is LinkType.KEY_LIST
        assert relation.is_many
        assert relation.external
        assert not relation.embedded

    def test_junction_is_mutable(self) -> None:
        relation = HasMany(from_model=Image, to_model=ImageTag)
        relation.junction = True
        assert relation.junction

    def test_conditions_are_copied(self) -> None:
        relation = HasMany(from_model=Gallery, to_model=Image, conditions={"published": True})
        relation.conditions["published"] = False
        assert relation.conditions == {"published": True}


class TestRelationshipLookups:
    """Tests for match/get/counterpart."""

    def test_match_builds_conditions(self) -> None:
        gallery = Gallery.create({"id": 1, "name": "Foo"}, exists=True)
        assert Gallery.definition().relation("images").match(gallery) == {"gallery_id": 1}

    def test_match_requires_the_local_key(self) -> None:
        with pytest.raises(MissingKeyForMatch, match="`'id'`"):
            Gallery.definition().relation("images").match(Gallery.create())

    def test_get_returns_loaded_data(self) -> None:
        image = Image.create({"gallery": {"name": "Foo"}})
        gallery = Image.definition().relation("gallery").get(image)
        assert isinstance(gallery, Gallery)

    def test_get_of_unloaded_external_relation_raises(self) -> None:
        image = Image.create({"id": 1, "gallery_id": 1}, exists=True)

        with pytest.raises(ExternalRelationRequiresFetch, match="use `fetch\\(\\)`"):
            Image.definition().relation("gallery").get(image)
        with pytest.raises(ExternalRelationRequiresFetch):
            image.get("gallery")

    def test_counterpart(self) -> None:
        counterpart = Gallery.definition().relation("images").counterpart()

        assert counterpart is Image.definition().relation("gallery")

    def test_through_relation_borrows_its_target(self) -> None:
        relation = Image.definition().relation("tags")

        assert isinstance(relation, HasManyThrough)
        assert relation.to_model is Tag
        assert relation.keys == {"tag_id": "id"}
        assert relation.through == "images_tags"
        assert relation.using == "tag"

    def test_through_requires_its_options(self) -> None:
        with pytest.raises(InvalidRelationConfig, match="`'through'`"):
            HasManyThrough(from_model=Image, using="tag")
        with pytest.raises(InvalidRelationConfig, match="`'using'`"):
            HasManyThrough(from_model=Image, through="images_tags")


class TestRelationshipFetch:
    """Tests for lazy loading a single entity relation."""

    async def test_fetch_belongs_to(self, gallery_schema) -> None:
        gallery_schema.seed({"id": 1, "name": "Foo"}, {"id": 2, "name": "Bar"})
        image = Image.create({"id": 1, "gallery_id": 2}, exists=True)

        gallery = await image.fetch("gallery")

        assert gallery.get("name") == "Bar"
        assert image.get("gallery") is gallery
        assert gallery_schema.queries[-1] == {"conditions": {"id": 2}}

    async def test_fetch_has_many(self, image_schema) -> None:
        image_schema.seed(
            {"id": 1, "gallery_id": 1, "name": "a.jpg"},
            {"id": 2, "gallery_id": 2, "name": "b.jpg"},
            {"id": 3, "gallery_id": 1, "name": "c.jpg"},
        )
        gallery = Gallery.create({"id": 1, "name": "Foo"}, exists=True)

        images = await gallery.fetch("images")

        assert [image.get("name") for image in images] == ["a.jpg", "c.jpg"]

    async def test_fetch_returns_loaded_data_without_query(self, gallery_schema) -> None:
        image = Image.create({"id": 1, "gallery": {"id": 1, "name": "Foo"}}, exists=True)

        gallery = await image.fetch("gallery")

        assert gallery.get("name") == "Foo"
        assert gallery_schema.queries == []

    async def test_fetch_with_extra_conditions(self, image_schema) -> None:
        image_schema.seed({"id": 1, "gallery_id": 1, "name": "a.jpg"}, {"id": 2, "gallery_id": 1, "name": "b.jpg"})
        gallery = Gallery.create({"id": 1}, exists=True)

        images = await gallery.fetch("images", {"conditions": {"name": "b.jpg"}})

        assert [image.get("id") for image in images] == [2]
        assert image_schema.queries[-1] == {"conditions": {"name": "b.jpg", "gallery_id": 1}}

    async def test_fetch_has_many_through(self, image_tag_schema, tag_schema) -> None:
        tag_schema.seed({"id": 1, "name": "tag1"}, {"id": 2, "name": "tag2"})
        image_tag_schema.seed({"id": 1, "image_id": 1, "tag_id": 2})
        image = Image.create({"id": 1}, exists=True)

        tags = await image.fetch("tags")

        assert [tag.get("name") for tag in tags] == ["tag2"]
