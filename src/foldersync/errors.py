"""
Folder Sync - Error taxonomy.

Mutation failures propagate to the caller. Read failures are logged and
degrade to empty or last-good results; TransientFetchError only escapes
when a caller asks for a strict read.
"""


class FolderSyncError(Exception):
    """Base class for folder synchronization errors."""
    pass


class NotFoundError(FolderSyncError):
    """A folder (or parent folder) id does not exist in the backing store."""

    def __init__(self, folder_id: str, message: str = "Folder not found"):
        super().__init__(f"{message}: {folder_id}")
        self.folder_id = folder_id


class ValidationError(FolderSyncError):
    """A folder name or placement violates the store's rules."""
    pass


class TransientFetchError(FolderSyncError):
    """Reading from the backing store failed; a later refetch may succeed."""
    pass


class ReconciliationAmbiguity(UserWarning):
    """
    Non-fatal: reconciliation cannot tell entries apart by name.

    Issued through warnings.warn, never raised.
    """
    pass
