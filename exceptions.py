class InventoryError(Exception):
    pass


class Unavailable(InventoryError):
    """The remote record service could not be reached or answered non-2xx."""

    def __init__(self, collection, reason):
        super().__init__(f"{collection}: {reason}")
        self.collection = collection
        self.reason = reason


class RemoteRejected(Unavailable):
    """The remote service answered with a structured error payload."""

    def __init__(self, collection, status_code, error):
        super().__init__(collection, f"HTTP {status_code}: {error}")
        self.status_code = status_code
        self.error = error


class ValidationFailed(InventoryError):
    pass


class ProtectedRecordError(ValidationFailed):
    pass


class ConfigWriteError(InventoryError):
    def __init__(self, failed_keys):
        super().__init__(f"Config keys not saved remotely: {', '.join(failed_keys)}")
        self.failed_keys = list(failed_keys)
