"""
Transmission Manager — convergent installer for the Transmission daemon.

Probes the host, plans the minimal set of installer actions needed to
reach the desired state, and applies them under a host-wide lock.
"""

__version__ = "0.1.0"
