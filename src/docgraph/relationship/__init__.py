from docgraph.relationship.base import Relationship
from docgraph.relationship.belongs_to import BelongsTo
from docgraph.relationship.has_many import HasMany
from docgraph.relationship.has_many_through import HasManyThrough
from docgraph.relationship.has_one import HasOne

__all__ = ["BelongsTo", "HasMany", "HasManyThrough", "HasOne", "Relationship"]
