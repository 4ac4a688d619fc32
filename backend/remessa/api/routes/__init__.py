"""Route Modules — one file per resource/concern.

Invariants:
    - Each module defines its own APIRouter with prefix and tags
    - Core operations delegate to services; routes own the commit unless the service
      commits under a lock or around an outbound call

Design Decisions:
    - Explicit registration in main.py over auto-discovery
"""
