from enum import StrEnum


class RelationKind(StrEnum):
    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"
    HAS_MANY_THROUGH = "has_many_through"


class LinkType(StrEnum):
    KEY = "key"
    KEY_LIST = "keylist"
    EMBEDDED = "embedded"
    CONTAINED = "contained"


class FormatMode(StrEnum):
    CAST = "cast"
    ARRAY = "array"
    DATASOURCE = "datasource"
