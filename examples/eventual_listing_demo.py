"""
Eventual-consistency demo: watch a listing catch up with writes and deletes.

Run:
    python examples/eventual_listing_demo.py
"""

import time

from flakystore import InconsistencyConfig, InconsistentObjectStore, ListObjectsRequest
from flakystore.exceptions import ThrottledError
from flakystore.memory import InMemoryObjectStore

BUCKET = "demo"


def listed(store: InconsistentObjectStore, delimiter=None):
    listing = store.list_objects(
        ListObjectsRequest(bucket=BUCKET, prefix="data/", delimiter=delimiter)
    )
    return [s.key for s in listing.object_summaries], listing.common_prefixes


def main() -> None:
    store = InconsistentObjectStore(
        InMemoryObjectStore(),
        InconsistencyConfig(delay_key_substring="*", delay_window_ms=1500),
        seed=42,
    )

    store.put_object(BUCKET, "data/2024/01/part-0000", b"rows")
    print("right after put:      ", listed(store))
    time.sleep(1.6)
    print("after the window:     ", listed(store))

    store.delete_object(BUCKET, "data/2024/01/part-0000")
    print("right after delete:   ", listed(store))
    print("directory view:       ", listed(store, delimiter="/"))
    store.clear_inconsistency()
    print("after clear:          ", listed(store))

    store.set_throttle_probability(1.0)
    store.set_failure_limit(2)

    # A naive caller retry loop riding out the failure budget.
    for attempt in range(1, 5):
        try:
            listed(store)
        except ThrottledError as exc:
            print(f"attempt {attempt} throttled:", exc)
            continue
        print(f"attempt {attempt} succeeded")
        break
    print(store.describe())


if __name__ == "__main__":
    main()
