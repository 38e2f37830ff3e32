"""Rate limiting adapters.

The portal starts with an in-memory fixed-window limiter; the abstract
interface lets a shared store (e.g. Redis) replace it for multi-instance
deployments without touching the HTTP layer.
"""
