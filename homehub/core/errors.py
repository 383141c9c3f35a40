"""Error taxonomy for the notification pipeline."""


class HomeHubError(Exception):
    """Base class for notification pipeline errors."""


class TransientBackendError(HomeHubError):
    """Network or database failure; retrying the user action may succeed."""


class ConfigurationUnavailable(HomeHubError):
    """Required configuration (e.g. the VAPID key pair) is missing."""


class NotAuthenticated(HomeHubError):
    """No identity is present for an operation that needs a user id."""


class MalformedKeyMaterial(HomeHubError, ValueError):
    """Key material could not be decoded."""
