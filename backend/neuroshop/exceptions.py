"""
NeuroShop - Error Taxonomy

Storage and validation errors propagate to the API boundary.
Collaborator errors (text generation, price source) are recovered locally
by the services that call the collaborator.
"""


class NeuroshopError(Exception):
    """Base class for all service errors."""
    pass


class StoreUnavailable(NeuroshopError):
    """Raised when the persistence layer cannot be reached."""
    pass


class InvalidItem(NeuroshopError):
    """Raised when input fails validation."""
    pass


class NotFound(NeuroshopError):
    """Raised when a referenced record does not exist for the user."""
    pass


class AlreadyResolved(NeuroshopError):
    """Raised when responding to an alert that already has a terminal response."""
    pass


class GenerationUnavailable(NeuroshopError):
    """Raised when the text-generation backend cannot be reached."""
    pass


class MalformedGenerationOutput(NeuroshopError):
    """Raised when generated text does not parse into the expected structure."""
    pass


class PriceSourceUnavailable(NeuroshopError):
    """Raised when a price source cannot produce a price for a URL."""
    pass
