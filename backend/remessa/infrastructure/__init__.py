"""Infrastructure Layer — database, logging and TCE transports.

Invariants:
    - Infrastructure never imports from core/ domain logic beyond error types and protocols
    - All external calls bounded by a configured timeout

Design Decisions:
    - Transports are interchangeable strategies behind core.repository_protocols.Transport
"""
