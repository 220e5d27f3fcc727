"""Live feed from the capture service.

Modules:
    connection — Connection state machine with capped exponential backoff
    messages   — Connection state and inbound frame decoding
    events     — Ordered fan-out of states, samples and cycle results
"""
