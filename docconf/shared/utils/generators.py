"""Storage identity generation (CUID2)."""

from cuid2 import Cuid

DOCUMENT_ID_LENGTH = 24

_document_ids = Cuid(length=DOCUMENT_ID_LENGTH)


def generate_document_id() -> str:
    """Return a new storage id for a document saved for the first time.

    CUID2 ids are lowercase alphanumerics, so they are valid Firestore
    document ids without escaping.
    """
    return _document_ids.generate()
