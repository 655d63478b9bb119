"""Write-side kernel services. Callers own the transaction boundary."""
