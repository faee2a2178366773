"""Exception hierarchy for the status alerting pipeline."""


class StatusAlertsError(Exception):
    """Base exception for all status alerting errors."""


class ConfigError(StatusAlertsError):
    """An environment override could not be interpreted."""


class FetchError(StatusAlertsError):
    """Failed to retrieve a status payload (network, HTTP status, timeout)."""


class PayloadError(FetchError):
    """A status payload was retrieved but did not have the expected shape."""


class DiffError(StatusAlertsError):
    """Diffing failed on a snapshot that slipped past parsing."""


class DeliveryError(StatusAlertsError):
    """The notifier could not deliver a batch of alerts."""


class StoreError(StatusAlertsError):
    """The snapshot store could not read or write the observed state."""
