from .config import (
    VALID_PROTOCOLS,
    CouchbaseConfig,
    CouchbaseConnection,
)
from .keyspace import (
    Keyspace,
    get_keyspace,
)
from .base_model import (
    BaseDocument,
    BaseEntityData,
    CouchbaseRepository,
    StaleDocumentError,
    DataT,
    T
)
