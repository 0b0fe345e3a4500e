class StorefrontError(RuntimeError):
    """Base class for storefront failures."""


class AuthenticationRequired(StorefrontError):
    """Operation needs a signed-in identity; callers redirect to login."""


class AuthError(StorefrontError):
    """Sign-up, sign-in or token check rejected."""


class StoreError(StorefrontError):
    """Document store unreachable or rejecting the request."""


class CatalogValidationError(StorefrontError):
    """Uploaded catalog text failed validation; nothing was written."""
