"""
Capacity-aware multi-backend storage router.

Spreads relational data across several size-capped database instances and
moves the active write target to another instance when the current one
fills up, while callers keep talking to what looks like a single handle.
"""
