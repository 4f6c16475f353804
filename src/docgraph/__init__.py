"""docgraph - An object-document mapper with lazy relations and change tracking."""

from importlib.metadata import version, PackageNotFoundError

from docgraph.buffer import Buffer
from docgraph.collection import Collection, Through
from docgraph.collector import Collector
from docgraph.conventions import Conventions
from docgraph.cursor import Cursor
from docgraph.document import Document
from docgraph.model import Model
from docgraph.node import discard_notifications, flush_notifications
from docgraph.registry import ModelRegistry, registry
from docgraph.relationship import BelongsTo, HasMany, HasManyThrough, HasOne, Relationship
from docgraph.schema import ColumnSpec, RelationConfig, Schema
from docgraph.validator import Validator

try:
    __version__ = version("docgraph")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = [
    "BelongsTo",
    "Buffer",
    "Collection",
    "Collector",
    "ColumnSpec",
    "Conventions",
    "Cursor",
    "Document",
    "HasMany",
    "HasManyThrough",
    "HasOne",
    "Model",
    "ModelRegistry",
    "RelationConfig",
    "Relationship",
    "Schema",
    "Through",
    "Validator",
    "__version__",
    "discard_notifications",
    "flush_notifications",
    "registry",
]
