# assetreg/errors.py
"""
Error types for the registration service.

Registry errors are raised by the registry itself. Content store errors are
raised by store implementations and propagated to the caller unchanged.
Lookups that miss are not errors: they return None.
"""


class RegistryError(Exception):
    """Base class for registry failures."""


class InvalidInput(RegistryError, ValueError):
    """CID is empty, not a string, or malformed (strict mode)."""


class PersistenceFailure(RegistryError):
    """The durable log could not commit, or could not be replayed."""


class ContentStoreError(Exception):
    """Base class for content store failures."""


class StoreUnavailable(ContentStoreError, ConnectionError):
    """The content store could not be reached."""


class UploadRejected(ContentStoreError):
    """The content store refused the blob (size limit, empty blob, ...)."""
