# blogdesk/errors.py


class BlogDeskError(Exception):
    pass


class ValidationError(BlogDeskError):
    """Bad input detected locally; never sent to the store."""


class NotFoundError(BlogDeskError):
    pass


class StoreError(BlogDeskError):
    """Durable post store failed (network, permission, driver)."""


class UploadError(BlogDeskError):
    """Object store rejected or failed an asset upload."""


class AssetUploadError(BlogDeskError):
    """Image upload failed before any post write was attempted."""


class SaveError(BlogDeskError):
    """Post write failed after a successful (or skipped) image upload."""


class ConfirmationRequired(BlogDeskError):
    pass


class SubscriptionError(BlogDeskError):
    pass


class NotAuthenticatedError(BlogDeskError):
    pass
