"""
Culler application package.

Layered the same way throughout:

  culler_app/repositories/  — pure I/O: loading from and persisting to JSON files.
  culler_app/services/      — business logic: rounds, projects, candidate lookup.

``Culler`` (in ``culler.py``) is the integration point: it creates the
repository and service instances in ``__init__`` and exposes them as public
attributes (e.g. ``culler.round_service``).  Route handlers in
``culler_gui.py`` call those services instead of touching the JSON document
directly.
"""
