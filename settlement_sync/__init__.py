"""
settlement_sync -- accounting sync queue and orchestration.

Turns a confirmed payment into an invoice and a payment record in the
merchant's external accounting system through a durable, idempotent,
retrying job queue.

Architecture:
    settlement_sync imports from settlement_kernel, settlement_fx and
    settlement_config.  The kernel never imports from settlement_sync
    (except db.engine.create_tables, which registers its models).

Invariants:
    - One SyncJob per (payment, kind); enqueue is an atomic upsert.
    - retry_count is only reset by first creation.
    - A payment's ledger posting is written once, keyed by payment id.
    - Retries are pull-based: workers select due jobs by next_retry_at.
"""
