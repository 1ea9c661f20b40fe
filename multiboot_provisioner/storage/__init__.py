"""Device-facing building blocks: geometry planning, partition naming,
command rendering and execution, discovery and safety checks."""
