# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Tagmigrate Engine Store

SQLite-based persistence for deployments, definitions and running instances.

All writes of one deployment batch or one migration pass happen inside a
single ``transaction()`` block. Nested blocks become savepoints, so one
deployment unit or one migration hop can be rolled back on its own while
the surrounding batch carries on. Reads on the store see rows written
earlier in the same transaction.

The exclusive lock is a dedicated row in ``properties``. Updating it takes
SQLite's write lock, which is held until the enclosing transaction ends.
"""

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from .interfaces import DefinitionStore, ExclusiveLock, InstanceStore
from .versioning.models import Definition, Deployment, Resource, RunningInstance
from .versioning.tags import normalize_tag

logger = logging.getLogger("tagmigrate.store")

LOCK_PROPERTY = "deployment.lock"

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS properties (
        name TEXT PRIMARY KEY,
        value TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS deployments (
        id TEXT PRIMARY KEY,
        name TEXT,
        tenant_id TEXT,
        deployed_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS resources (
        id TEXT PRIMARY KEY,
        deployment_id TEXT NOT NULL,
        name TEXT NOT NULL,
        checksum TEXT NOT NULL,
        content BLOB,
        FOREIGN KEY (deployment_id) REFERENCES deployments(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS definitions (
        id TEXT PRIMARY KEY,
        key TEXT NOT NULL,
        version_tag TEXT,
        version INTEGER NOT NULL,
        name TEXT,
        deployment_id TEXT,
        resource_name TEXT,
        tenant_id TEXT,
        UNIQUE (key, version)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS instances (
        id TEXT PRIMARY KEY,
        definition_id TEXT NOT NULL,
        definition_key TEXT NOT NULL,
        business_key TEXT,
        started_at TEXT NOT NULL,
        FOREIGN KEY (definition_id) REFERENCES definitions(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_definitions_key ON definitions(key, version_tag)",
    "CREATE INDEX IF NOT EXISTS idx_instances_key ON instances(definition_key)",
    "CREATE INDEX IF NOT EXISTS idx_resources_deployment ON resources(deployment_id)",
]

_DEFINITION_COLUMNS = (
    "id, key, version_tag, version, name, deployment_id, resource_name, tenant_id"
)
_INSTANCE_COLUMNS = "id, definition_id, definition_key, business_key, started_at"


class PropertyLock(ExclusiveLock):
    """Exclusive lock backed by the ``deployment.lock`` property row."""

    def __init__(self, store: "EngineStore"):
        self.store = store

    def try_acquire(self) -> bool:
        if not self.store.in_transaction:
            raise RuntimeError("The exclusive lock must be acquired inside a transaction")

        try:
            self.store.execute(
                "UPDATE properties SET value = ? WHERE name = ?",
                (datetime.now().isoformat(), LOCK_PROPERTY),
            )
        except sqlite3.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                logger.warning(f"Exclusive lock is held elsewhere: {e}")
                return False
            raise

        logger.debug("Acquired exclusive db lock")
        return True


class EngineStore(DefinitionStore, InstanceStore):
    """
    SQLite storage for the workflow engine.

    Usage:
        store = EngineStore(":memory:")

        with store.transaction():
            store.exclusive_lock.try_acquire()
            store.insert_definition(definition)

        instance = store.start_instance(definition)
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None, timeout: float = 5.0):
        """
        Initialize EngineStore.

        Args:
            db_path: Path to SQLite database, or ":memory:".
                     Defaults to the configured database path
            timeout: Seconds to wait for another writer before giving up
        """
        if db_path is None:
            from .config import get_config

            db_path = get_config().paths.database_path

        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode: transactions are opened explicitly by transaction()
        self._conn = sqlite3.connect(self.db_path, timeout=timeout, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._depth = 0
        self._lock = PropertyLock(self)
        self._init_db()

    def _init_db(self):
        """Initialize database schema"""
        with self.transaction():
            for statement in _SCHEMA:
                self._conn.execute(statement)
            self._conn.execute(
                "INSERT OR IGNORE INTO properties (name, value) VALUES (?, ?)",
                (LOCK_PROPERTY, "0"),
            )

    def close(self):
        self._conn.close()

    # ==========================================================================
    # Transactions
    # ==========================================================================

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @property
    def exclusive_lock(self) -> ExclusiveLock:
        return self._lock

    @contextmanager
    def transaction(self) -> Iterator["EngineStore"]:
        """Open a transaction, or a savepoint when one is already open."""
        savepoint = f"sp_{self._depth}"
        if self._depth == 0:
            self._conn.execute("BEGIN")
        else:
            self._conn.execute(f"SAVEPOINT {savepoint}")
        self._depth += 1

        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._conn.execute("ROLLBACK")
            else:
                self._conn.execute(f"ROLLBACK TO {savepoint}")
                self._conn.execute(f"RELEASE {savepoint}")
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self._conn.execute("COMMIT")
            else:
                self._conn.execute(f"RELEASE {savepoint}")

    def execute(self, sql: str, params: Iterable = ()) -> sqlite3.Cursor:
        return self._conn.execute(sql, tuple(params))

    # ==========================================================================
    # Deployments and resources
    # ==========================================================================

    def insert_deployment(
        self, name: Optional[str] = None, tenant_id: Optional[str] = None
    ) -> Deployment:
        deployment = Deployment(id=str(uuid.uuid4()), name=name, tenant_id=tenant_id)
        self.execute(
            "INSERT INTO deployments (id, name, tenant_id, deployed_at) VALUES (?, ?, ?, ?)",
            (
                deployment.id,
                deployment.name,
                deployment.tenant_id,
                deployment.deployed_at.isoformat(),
            ),
        )
        return deployment

    def insert_resource(self, deployment: Deployment, resource: Resource) -> None:
        self.execute(
            """
            INSERT INTO resources (id, deployment_id, name, checksum, content)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                str(uuid.uuid4()),
                deployment.id,
                resource.name,
                resource.checksum,
                resource.content,
            ),
        )

    def latest_resource_checksums(
        self, deployment_name: Optional[str], tenant_id: Optional[str]
    ) -> Dict[str, str]:
        """Checksum of the newest resource per name among same-named deployments"""
        cursor = self.execute(
            """
            SELECT r.name, r.checksum
            FROM resources r JOIN deployments d ON r.deployment_id = d.id
            WHERE d.name IS ? AND d.tenant_id IS ?
            ORDER BY d.rowid DESC, r.rowid DESC
            """,
            (deployment_name, tenant_id),
        )
        checksums: Dict[str, str] = {}
        for row in cursor.fetchall():
            checksums.setdefault(row["name"], row["checksum"])
        return checksums

    def count_deployments(self) -> int:
        return self.execute("SELECT COUNT(*) FROM deployments").fetchone()[0]

    # ==========================================================================
    # Definitions
    # ==========================================================================

    def insert_definition(self, definition: Definition) -> Definition:
        if not definition.id or definition.version <= 0:
            raise ValueError(f"Definition {definition.key} has no id or version assigned")

        definition = definition.model_copy(
            update={"version_tag": normalize_tag(definition.version_tag)}
        )
        self.execute(
            f"INSERT INTO definitions ({_DEFINITION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                definition.id,
                definition.key,
                definition.version_tag,
                definition.version,
                definition.name,
                definition.deployment_id,
                definition.resource_name,
                definition.tenant_id,
            ),
        )
        return definition

    def list_definitions_by_key(self, key: str) -> List[Definition]:
        cursor = self.execute(
            f"SELECT {_DEFINITION_COLUMNS} FROM definitions WHERE key = ? ORDER BY version",
            (key,),
        )
        return [Definition(**dict(row)) for row in cursor.fetchall()]

    def get_definition(self, definition_id: str) -> Optional[Definition]:
        row = self.execute(
            f"SELECT {_DEFINITION_COLUMNS} FROM definitions WHERE id = ?",
            (definition_id,),
        ).fetchone()
        return Definition(**dict(row)) if row else None

    def get_definition_by_key_and_tag(
        self, key: str, version_tag: Optional[str]
    ) -> Optional[Definition]:
        row = self.execute(
            f"""
            SELECT {_DEFINITION_COLUMNS} FROM definitions
            WHERE key = ? AND version_tag IS ?
            ORDER BY version DESC LIMIT 1
            """,
            (key, normalize_tag(version_tag)),
        ).fetchone()
        return Definition(**dict(row)) if row else None

    def list_deployed_keys(self) -> List[str]:
        cursor = self.execute("SELECT DISTINCT key FROM definitions ORDER BY key")
        return [row["key"] for row in cursor.fetchall()]

    # ==========================================================================
    # Running instances
    # ==========================================================================

    def start_instance(
        self, definition: Definition, business_key: Optional[str] = None
    ) -> RunningInstance:
        instance = RunningInstance(
            id=str(uuid.uuid4()),
            definition_id=definition.id,
            definition_key=definition.key,
            business_key=business_key,
        )
        self.execute(
            f"INSERT INTO instances ({_INSTANCE_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
            (
                instance.id,
                instance.definition_id,
                instance.definition_key,
                instance.business_key,
                instance.started_at.isoformat(),
            ),
        )
        return instance

    def get_instance(self, instance_id: str) -> Optional[RunningInstance]:
        row = self.execute(
            f"SELECT {_INSTANCE_COLUMNS} FROM instances WHERE id = ?", (instance_id,)
        ).fetchone()
        return RunningInstance(**dict(row)) if row else None

    def list_instances_by_definition_key(self, key: str) -> List[RunningInstance]:
        cursor = self.execute(
            f"""
            SELECT {_INSTANCE_COLUMNS} FROM instances
            WHERE definition_key = ? ORDER BY started_at, rowid
            """,
            (key,),
        )
        return [RunningInstance(**dict(row)) for row in cursor.fetchall()]

    def rebind_instances(self, instance_ids: List[str], definition: Definition) -> int:
        """Bind instances to another definition, returning the rows changed"""
        if not instance_ids:
            return 0
        placeholders = ",".join("?" * len(instance_ids))
        cursor = self.execute(
            f"""
            UPDATE instances SET definition_id = ?, definition_key = ?
            WHERE id IN ({placeholders})
            """,
            [definition.id, definition.key, *instance_ids],
        )
        return cursor.rowcount

    def delete_instance(self, instance_id: str) -> bool:
        cursor = self.execute("DELETE FROM instances WHERE id = ?", (instance_id,))
        return cursor.rowcount > 0

    def count_instances(self, key: Optional[str] = None) -> int:
        if key is None:
            return self.execute("SELECT COUNT(*) FROM instances").fetchone()[0]
        return self.execute(
            "SELECT COUNT(*) FROM instances WHERE definition_key = ?", (key,)
        ).fetchone()[0]
