"""Domain layer for the protocol bridge.

Pure logic with zero external dependencies.

Modules:
    errors: Domain exception hierarchy
    value_objects: Immutable value objects (ChatMessage, BackendRequest, ...)
    services: Domain services (ModelRouter)
"""
