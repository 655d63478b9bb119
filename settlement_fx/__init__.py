"""
settlement_fx -- exchange rates for the settlement engine.

Provides the provider chain (CoinGecko first, Hedera mirror node as
fallback), the TTL rate cache with single-flight lookups, batched rate
fetching, and the FX snapshot service that pins rates to payments.

Architecture:
    settlement_fx imports from settlement_kernel and settlement_config.
    Nothing in settlement_kernel imports from settlement_fx.
"""
