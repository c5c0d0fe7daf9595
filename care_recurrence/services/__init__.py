"""
Service layer for the care recurrence service.

Provides business logic and data access patterns for:
- Rule storage (create, replace, remove the rule of a series)
- Occurrence materialization (idempotent creation of the next item)
- Completion workflow (mark done, queue, consume with retries)
- Common queries (items, rules, ledger, completion queue)
"""

from care_recurrence.services.queries import (
    get_completion_event,
    get_events_to_process,
    get_item_by_id,
    get_materialized_occurrence,
    get_rule_record,
    get_series_items,
    require_item,
)

from care_recurrence.services.rule_store import (
    apply_rule_to_record,
    rule_to_raw,
    delete_rule_for_item,
    get_rule_for_item,
    rule_from_record,
    save_rule_for_item,
)

from care_recurrence.services.materializer import (
    MaterializationResult,
    OccurrenceMaterializer,
)

from care_recurrence.services.completion import (
    NEXT_OCCURRENCE_FAILED_MESSAGE,
    CompletionResult,
    ProcessingResult,
    complete_item,
    process_completion_event,
    process_event_in_background,
    process_pending_events,
)

__all__ = [
    # Queries
    "get_completion_event",
    "get_events_to_process",
    "get_item_by_id",
    "get_materialized_occurrence",
    "get_rule_record",
    "get_series_items",
    "require_item",
    # Rule store
    "apply_rule_to_record",
    "rule_to_raw",
    "delete_rule_for_item",
    "get_rule_for_item",
    "rule_from_record",
    "save_rule_for_item",
    # Materializer
    "MaterializationResult",
    "OccurrenceMaterializer",
    # Completion
    "NEXT_OCCURRENCE_FAILED_MESSAGE",
    "CompletionResult",
    "ProcessingResult",
    "complete_item",
    "process_completion_event",
    "process_event_in_background",
    "process_pending_events",
]
