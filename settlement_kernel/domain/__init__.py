"""Pure domain types for the settlement engine. Zero I/O except SystemClock."""
