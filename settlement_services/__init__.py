"""
settlement_services -- application-level entry points.

Wires the kernel, FX and sync packages into the operations the rest of the
platform calls: handling a payment confirmation, building the
reconciliation report and serving dashboard reads.
"""
