"""
Transaction boundary for the cascade package.

Provides run_in_transaction(), the all-or-nothing unit of work with retry of
deadlocks and serialization failures.
"""

from cascade.transactions.unit_of_work import is_retryable_error, run_in_transaction

__all__ = ["is_retryable_error", "run_in_transaction"]
