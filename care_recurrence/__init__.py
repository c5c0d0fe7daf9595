"""
Care recurrence service.

Recurrence rule engine for care-group tasks and appointments: decides the next
occurrence of a recurring item and materializes it exactly once per completion.
"""

__version__ = "0.1.0"
