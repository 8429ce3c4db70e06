"""Workspace managers.

The identity store, custom path index and CRUD dispatcher hold the service
logic.  They talk to a ``StorageBackend`` and raise domain exceptions from
``mockbase.runtime.errors``, never HTTP exceptions -- the translation to
responses happens once, in the application's exception handlers.
"""
