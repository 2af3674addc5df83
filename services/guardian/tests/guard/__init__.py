"""
Guardian state machine tests.

Covers:
- idle / watching / safe / alert / pivoting transitions
- alert cooldown and in-flight debounce
- template fallback when phrasing fails
- stale pipeline results after stop() or a leg advance
- journey legs -> guarded connections
"""
