"""Shared test fixtures."""

import pytest

from acl_docstore import AclBackend
from acl_docstore.gateways import InMemoryGateway, SQLiteGateway


@pytest.fixture(params=["memory", "sqlite"])
async def gateway(request, tmp_path):
    if request.param == "memory":
        yield InMemoryGateway()
        return
    gw = SQLiteGateway(str(tmp_path / "acl.db"))
    yield gw
    await gw.close()


@pytest.fixture
def backend(gateway):
    return AclBackend(gateway, allow_clean=True)


@pytest.fixture
async def seeded(backend):
    """Backend with a few role sets already committed."""
    batch = backend.begin()
    backend.add(batch, "roles", "alice", ["admin", "editor"])
    backend.add(batch, "roles", "bob", ["editor", "viewer"])
    backend.add(batch, "users", "admin", ["alice"])
    await backend.commit(batch)
    return backend
