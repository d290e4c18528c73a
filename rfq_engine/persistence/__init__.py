"""Persistence — RFQStore contract, in-memory and MongoDB stores."""

from rfq_engine.persistence.base import RFQStore
from rfq_engine.persistence.memory_store import InMemoryRFQStore
from rfq_engine.persistence.mongo_client import MongoClient
from rfq_engine.persistence.mongo_store import MongoRFQStore

__all__ = ["RFQStore", "InMemoryRFQStore", "MongoClient", "MongoRFQStore"]
