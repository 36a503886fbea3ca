"""Core rules for the Betbook wagering engine.

This package contains pure, storage-agnostic building blocks:

- ``game_config`` — default odds, stake limits and env-driven settings
- ``errors``      — exception taxonomy shared by services and the API
- ``predictions`` — typed prediction variants and their parsers
- ``evaluator``   — win/lose decision and payout per game mode
- ``lifecycle``   — event status machine and transition checks
- ``recurrence``  — next-cycle window computation for recurring markets

Nothing in this package imports from ``betbook.services`` or ``betbook.models``.
All modules are side-effect-free and unit-testable in isolation.
"""
