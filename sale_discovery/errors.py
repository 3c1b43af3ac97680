"""
Error taxonomy for the discovery pipeline.

None of these escape a cycle: adapters and the classifier gateway turn
them into empty / zero-confidence results, and the engine records
publish failures in the cycle summary.
"""


class DiscoveryError(Exception):
    """Base class for discovery pipeline errors."""


class TransportError(DiscoveryError):
    """Network failure or timeout talking to a source or provider."""


class ParseError(DiscoveryError):
    """Malformed HTML/XML/JSON from a source or model response."""


class PersistenceError(DiscoveryError):
    """Store/Sale write failure."""


class ConfigurationError(DiscoveryError):
    """Missing credentials or invalid settings for a capability."""
