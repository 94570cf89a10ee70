"""Document gateways the ACL backend can persist into."""

from acl_docstore.gateways.base import DocumentGateway, Transaction
from acl_docstore.gateways.memory import InMemoryGateway
from acl_docstore.gateways.sqlite import SQLiteGateway

__all__ = ["DocumentGateway", "InMemoryGateway", "SQLiteGateway", "Transaction"]
