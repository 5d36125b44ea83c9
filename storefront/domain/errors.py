# storefront/domain/errors.py


class StorefrontError(Exception):
    """Baza dla bledow domenowych, mapowanych na kody HTTP w main.py."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(StorefrontError):
    status_code = 404


class InvalidState(StorefrontError):
    status_code = 400


class AlreadyProcessed(StorefrontError):
    status_code = 409


class ConcurrentModification(StorefrontError):
    status_code = 409


class InvalidSignature(StorefrontError):
    status_code = 400


class Unauthorized(StorefrontError):
    status_code = 403
