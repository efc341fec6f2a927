"""
Neural Relay: Multi-Provider AI Request Dispatcher

Routes code-generation, completion and analysis tasks to the most capable
configured AI backend, balances load across equally capable backends, and
falls back along the ranked chain when a backend fails. Every response is
presented under a single brand identity.
"""

__version__ = "0.1.0"
