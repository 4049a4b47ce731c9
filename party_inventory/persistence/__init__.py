"""Document persistence for the party inventory core."""

from .document_store import JsonDocumentStore, sanitize_key
from .gateway import PersistenceGateway
from .mutation_guard import DocumentMutationGuard, MutationDecision

__all__ = ["DocumentMutationGuard", "JsonDocumentStore", "MutationDecision", "PersistenceGateway", "sanitize_key"]
