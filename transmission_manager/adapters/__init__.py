"""Adapters — capability variants binding actions to the host.

Import concrete variants from their modules; the registry in
``adapters.registry`` selects them per host.
"""
