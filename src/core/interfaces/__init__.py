"""Core contracts (Protocol).

Concrete adapters implement these; services depend only on the contracts.
"""
