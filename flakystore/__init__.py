"""
flakystore - Object store wrapper that simulates eventual consistency.

Wrap a store, then test how your code copes with listings that lag behind
writes and deletes, and with throttled requests:

    from flakystore import InconsistentObjectStore, InconsistencyConfig
    from flakystore.memory import InMemoryObjectStore

    store = InconsistentObjectStore(
        InMemoryObjectStore(),
        InconsistencyConfig(
            delay_key_substring="*",
            delay_window_ms=2000,
            throttle_probability=0.2,
            failure_limit=10,
        ),
        seed=42,
    )

Between test cases:

    store.clear_inconsistency()
    store.set_failure_limit(10)

Advanced usage via submodules:
    from flakystore.consistency import ConsistencyState
    from flakystore.listing import ListingTransformer
"""

from flakystore.client import InconsistencyStats, InconsistentObjectStore  # noqa: F401
from flakystore.config import (  # noqa: F401
    MATCH_ALL_KEYS,
    InconsistencyConfig,
    get_config,
    reset_config,
)
from flakystore.exceptions import (  # noqa: F401
    FlakyStoreConfigError,
    FlakyStoreError,
    ObjectStoreError,
    ThrottledError,
)
from flakystore.failures import FailureInjector  # noqa: F401
from flakystore.memory import InMemoryObjectStore  # noqa: F401
from flakystore.models import (  # noqa: F401
    ListObjectsRequest,
    ListObjectsV2Request,
    ListObjectsV2Result,
    ObjectListing,
    ObjectSummary,
)
from flakystore.store import ObjectStore  # noqa: F401

__all__ = [
    "InconsistentObjectStore",
    "InconsistencyStats",
    "InconsistencyConfig",
    "MATCH_ALL_KEYS",
    "get_config",
    "reset_config",
    "FailureInjector",
    "InMemoryObjectStore",
    "ObjectStore",
    "ListObjectsRequest",
    "ListObjectsV2Request",
    "ListObjectsV2Result",
    "ObjectListing",
    "ObjectSummary",
    "FlakyStoreError",
    "FlakyStoreConfigError",
    "ObjectStoreError",
    "ThrottledError",
]
