"""
acl_docstore — Hello World

Role and permission sets live in buckets.  Changes are queued in a batch
and committed atomically; reads return plain sets.
"""

import asyncio

from acl_docstore import AclBackend
from acl_docstore.gateways import SQLiteGateway


async def main():
    # ──────────────────────────────────────
    #  1. Pick a gateway and build the backend
    # ──────────────────────────────────────
    gateway = SQLiteGateway(":memory:")
    acl = AclBackend(gateway)

    # ──────────────────────────────────────
    #  2. Queue changes, commit them together
    # ──────────────────────────────────────
    batch = acl.begin()
    acl.add(batch, "users", "alice", ["admin", "editor"])
    acl.add(batch, "users", "bob", "viewer")
    acl.add(batch, "permissions", "admin", ["delete", "publish"])
    acl.add(batch, "permissions", "editor", ["edit", "publish"])
    acl.add(batch, "permissions", "viewer", "read")
    await acl.commit(batch)

    # ──────────────────────────────────────
    #  3. Ask membership questions
    # ──────────────────────────────────────
    roles = await acl.get("users", "alice")
    print(f"alice roles:        {sorted(roles)}")
    print(f"alice permissions:  {sorted(await acl.union('permissions', sorted(roles)))}")

    per_bucket = await acl.unions(["users", "permissions"], ["bob", "viewer"])
    for bucket, members in per_bucket.items():
        print(f"{bucket + ':':<19} {sorted(members)}")

    # ──────────────────────────────────────
    #  4. Later operations win inside a batch
    # ──────────────────────────────────────
    batch = acl.begin()
    acl.remove(batch, "users", "alice", "editor")
    acl.delete(batch, "users", "bob")
    await acl.commit(batch)

    print(f"alice after update: {sorted(await acl.get('users', 'alice'))}")
    print(f"bob after delete:   {sorted(await acl.get('users', 'bob'))}")

    await gateway.close()


if __name__ == "__main__":
    asyncio.run(main())
