"""metasync: an object metadata index kept consistent with an object store.

Uploads go straight to the store through signed URLs and are then synced
into the index; deletes remove the index entry at once and delete the object
through a retried background job.
"""

__version__ = "0.1.0"
