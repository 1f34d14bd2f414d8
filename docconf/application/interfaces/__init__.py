"""Interfaces (ports) implemented by infrastructure."""

from docconf.application.interfaces.document_backend import IDocumentBackend

__all__ = ["IDocumentBackend"]
