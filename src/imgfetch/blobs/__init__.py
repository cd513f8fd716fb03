"""BlobStore and FileBlobStore: digest-addressed blob storage for imgfetch."""

from imgfetch.blobs._file import FileBlobStore
from imgfetch.blobs._helpers import put_file
from imgfetch.blobs._reader import ValidatingReader
from imgfetch.blobs._store import BlobStore

__all__ = [
    "BlobStore",
    "FileBlobStore",
    "ValidatingReader",
    "put_file",
]
