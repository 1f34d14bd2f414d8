"""Firestore integration over the REST API."""

from docconf.infrastructure.firebase.client import FirestoreDocumentBackend

__all__ = ["FirestoreDocumentBackend"]
