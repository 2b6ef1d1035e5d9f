"""Domain models and entities.

- Pure data structures (pydantic v2) for hosts, firewalls, secrets and zones.
- The domain knows nothing about SSH, sockets or the CLI.
"""
