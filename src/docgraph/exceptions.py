"""Exceptions raised by the document graph, schema and relationship layers."""

from typing import Any


class DocGraphError(Exception):
    """Base exception for docgraph errors."""

    pass


class ConfigurationError(DocGraphError):
    """Raised at definition time when a schema, relation or convention is misconfigured."""

    pass


class UnknownConvention(ConfigurationError):
    """Raised when a naming convention is looked up but was never defined."""

    def __init__(self, name: str):
        super().__init__(f"Convention for `'{name}'` doesn't exists.")
        self.name = name


class InvalidRelationConfig(ConfigurationError):
    """Raised when a relationship is declared with missing or conflicting options."""

    def __init__(self, message: str, option: str | None = None):
        super().__init__(message)
        self.option = option


class UnregisteredModel(ConfigurationError):
    """Raised when a model is looked up by a name nobody registered."""

    def __init__(self, name: str):
        super().__init__(f"Undefined `{name}` as model dependency, the model need to be registered first.")
        self.name = name


class MissingPrimaryKey(ConfigurationError):
    """Raised when identity is requested from a schema without a primary key."""

    def __init__(self, model: str):
        super().__init__(f"No primary key has been defined for `{model}`'s schema.")
        self.model = model


class PathError(DocGraphError):
    """Raised when a dotted path cannot be resolved against the data graph."""

    pass


class EmptyFieldName(PathError):
    """Raised when an empty string is used as a field name."""

    def __init__(self) -> None:
        super().__init__("Field name can't be empty.")


class InvalidPathSegment(PathError):
    """Raised when traversal goes through a value that is not a document or collection."""

    def __init__(self, field: str):
        super().__init__(f"The field: `{field}` is not a valid document or entity.")
        self.field = field


class MissingSchemaField(PathError):
    """Raised when a locked schema is queried for an undeclared field."""

    def __init__(self, field: str):
        super().__init__(f"Missing schema definition for field: `{field}`.")
        self.field = field


class MissingSchemaDefinition(MissingSchemaField):
    """Raised when casting data for an undeclared field under a locked schema."""

    pass


class InvalidIndex(PathError):
    """Raised when a collection is addressed with a non integer or out of range offset."""

    def __init__(self, index: Any):
        super().__init__(f"Invalid index `{index}` for a collection, must be a numeric value.")
        self.index = index


class RelationError(DocGraphError):
    """Raised when a relationship is used in a way its link type doesn't support."""

    pass


class ExternalRelationRequiresFetch(RelationError):
    """Raised when a foreign key relation is read synchronously before being loaded."""

    def __init__(self, name: str):
        super().__init__(
            f"The relation `'{name}'` is an external relation, use `fetch()` to lazy load its data."
        )
        self.name = name


class MissingKeyForMatch(RelationError):
    """Raised when an entity lacks the local key needed to build relation conditions."""

    def __init__(self, key: str):
        super().__init__(f"The `'{key}'` key is missing from entity data.")
        self.key = key


class MissingRelatedKey(RelationError):
    """Raised when a related entity has no primary key after being saved."""

    def __init__(self, key: str):
        super().__init__(f"The `'{key}'` key is missing from related data.")
        self.key = key


class RelationNotFound(RelationError):
    """Raised when a relation name is not bound to a schema."""

    def __init__(self, name: str, model: str | None = None):
        owner = f" for `{model}`" if model else ""
        super().__init__(f"Relationship `{name}` not found{owner}.")
        self.name = name
        self.model = model


class DataError(DocGraphError):
    """Raised when stored data can't be interpreted the way an operation requires."""

    pass


class InvalidDate(DataError, ValueError):
    """Raised when a date value can't be formatted for export."""

    def __init__(self, value: Any):
        super().__init__(f"Invalid date `{value}`, can't be parsed.")
        self.value = value


class NotAModelCollection(DataError):
    """Raised when identity lookups are done on a collection without a model."""

    def __init__(self) -> None:
        super().__init__("Error, `index_of_id()` is only available on models.")


class NotIndexable(DataError):
    """Raised when indexing a collection that contains non document items."""

    def __init__(self) -> None:
        super().__init__("Only document can be indexed.")


class MissingEntityId(DataError):
    """Raised when an entity flagged as existing has no primary key value."""

    def __init__(self) -> None:
        super().__init__("Existing entities must have a valid ID.")


class UnknownEntity(DataError):
    """Raised when reloading an entity that no longer exists in the datasource."""

    def __init__(self, entity_id: Any):
        super().__init__(f"The entity ID:`{entity_id}` doesn't exists.")
        self.entity_id = entity_id


class MissingCollectedData(DataError):
    """Raised when a collector has nothing stored for the requested key."""

    def __init__(self, uuid: str, entity_id: Any):
        super().__init__(f"No collected data with UUID `'{uuid}'` and ID `'{entity_id}'`.")
        self.uuid = uuid
        self.entity_id = entity_id


class MissingPersistenceState(DataError):
    """Raised when the existence of a nested entity is unknown."""

    def __init__(self) -> None:
        super().__init__(
            "No persistence information is available for this entity use `sync()` to get an accurate existence value."
        )


class InvalidFormatMode(DocGraphError, ValueError):
    """Raised when a cast formatter is invoked outside the casting pipeline."""

    def __init__(self) -> None:
        super().__init__("Use Schema.cast() to perform casting.")


class BackendNotImplemented(DocGraphError, NotImplementedError):
    """Raised by the base schema for datasource operations a backend must provide."""

    def __init__(self, method: str, model: str):
        super().__init__(f"Missing `{method}()` implementation for `{model}`'s schema.")
        self.method = method
        self.model = model
