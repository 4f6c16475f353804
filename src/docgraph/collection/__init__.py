from docgraph.collection.collection import Collection
from docgraph.collection.through import Through

__all__ = ["Collection", "Through"]
