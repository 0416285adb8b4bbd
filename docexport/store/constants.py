"""Persisted key names for run and item state.

Each run field lives under its own key so a partially written run can be
detected: ``RUN_IN_PROGRESS`` is written last on start and deleted first
on clear.
"""

RUN_IN_PROGRESS = "RUN_IN_PROGRESS"
RUN_ID = "RUN_ID"
RUN_CURSOR = "RUN_CURSOR"
RUN_CHUNK_SIZE = "RUN_CHUNK_SIZE"
RUN_TOTAL_COUNT = "RUN_TOTAL_COUNT"
RUN_PROCESSED_COUNT = "RUN_PROCESSED_COUNT"
RUN_ITEM_QUEUE = "RUN_ITEM_QUEUE"
RUN_STARTED_AT = "RUN_STARTED_AT"
RUN_RESULTS = "RUN_RESULTS"
RUN_LEASE = "RUN_LEASE"

# Keys cleared after RUN_IN_PROGRESS when a run ends; the lease goes first
RUN_STATE_KEYS: tuple[str, ...] = (
    RUN_LEASE,
    RUN_ID,
    RUN_CURSOR,
    RUN_CHUNK_SIZE,
    RUN_TOTAL_COUNT,
    RUN_PROCESSED_COUNT,
    RUN_ITEM_QUEUE,
    RUN_STARTED_AT,
    RUN_RESULTS,
)

CONTINUATION = "CONTINUATION"

ITEM_STATE = "ITEM_STATE"
LAST_EXPORT_TIMESTAMP = "LAST_EXPORT_TIMESTAMP"

TRUE_VALUE = "true"
