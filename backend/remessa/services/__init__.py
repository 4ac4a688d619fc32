"""Services Layer — permission resolver, validation engine, remittance state machine, TCE adapter.

Invariants:
    - Services receive their collaborators through __init__ (no module-level singletons)
    - Services flush; routes own commits, except where the commit is part of the
      operation: validation passes and remittance creation commit under the record
      lock, and RemittanceService.send commits before and after the outbound call

Design Decisions:
    - Resolver depends only on the store; higher-level services depend on the resolver,
      never the reverse
"""
