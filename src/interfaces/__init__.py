"""Public interface definitions for all external collaborators.

The core (publisher, worker, query engine) reaches every external system
exclusively through the abstract base classes in this package.  Concrete
adapters implement them and are constructed explicitly in ``src/main.py``
and ``src/cli/`` then passed into the services; unit tests pass fakes.

CONCRETE PROVIDER MAP:
    Interface          →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────
    IMetadataStore     →  SQLiteMetadataStore
    IWorkQueue         →  RedisStreamWorkQueue, InMemoryWorkQueue
    ITextExtractor     →  FileTextExtractor
    ISearchIndex       →  SQLiteSearchIndex
"""

from src.interfaces.metadata_store import IMetadataStore
from src.interfaces.search_index import ISearchIndex
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.work_queue import IWorkQueue, QueueDelivery

__all__ = [
    "IMetadataStore",
    "ISearchIndex",
    "ITextExtractor",
    "IWorkQueue",
    "QueueDelivery",
]
