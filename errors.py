class GeoError(Exception):
    """Base error carrying the HTTP status the façade should answer with."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GeoError):
    status_code = 400


class NotFoundError(GeoError):
    status_code = 404


class StoreError(GeoError):
    status_code = 500


class LoadError(GeoError):
    """Raised by the bulk loader; the build is aborted and nothing is published."""
