"""
Features package: each sub-package encapsulates one part of the catalog engine.

Convention:
  features/<feature_name>/
    __init__.py      public API re-exports
    models.py        data models specific to this feature
    ...              the feature's logic (controller, sync, batch, ...)

Shared pieces live beside the sub-packages: errors.py (exception hierarchy),
validation.py (input checks) and engine.py (wires the features together).
"""
