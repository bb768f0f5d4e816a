"""
chancesign.core.ledger
======================

Append-only event ledger on top of ibis-framework.

- Backend-agnostic via ibis (duckdb in memory by default)
- JSON payloads with type-based wrap/unwrap
- Automatic chancesign_version tracking
- Query through ibis expressions on `Ledger.table`

Examples:
---------
>>> from chancesign.core.ledger import Ledger, create_test_connection
>>> from chancesign.core.names import Namespace
>>>
>>> conn = create_test_connection("duckdb")
>>> ledger = Ledger(conn)
>>>
>>> ledger.write_event(
...     time_index="1", namespace=Namespace.OBS, kind="trial",
...     session_id="s1", step_key="1", payload_type="Trial",
...     payload={"value": 104, "sequence_number": 0}
... )
>>>
>>> results = ledger.table.filter(ledger.table.payload_type == "Trial").execute()
>>> len(results)
1
>>> rows = ledger.unwrap_results(results)
>>> rows[0]["payload"]["value"]
104
"""

from __future__ import annotations
import json
import logging
import uuid as uuid_module
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import ibis
import pandas as pd
from ibis import BaseBackend
from ibis.expr.types import Table

from chancesign.__version__ import __version__
from chancesign.core.names import Namespace, SessionId, StepKey, TimeIndex
from chancesign.errors import InvalidArgument

logger = logging.getLogger(__name__)

NamespaceLike = Union[Namespace, str]


def get_ledger_schema() -> ibis.Schema:
    """Column layout shared by every ledger table."""
    return ibis.schema(
        [
            ("uuid", "string"),
            ("ledger_name", "string"),
            ("time_index", "string"),
            ("ts", "timestamp"),
            ("namespace", "string"),
            ("kind", "string"),
            ("entity", "string"),
            ("snapshot_id", "string"),
            ("tag", "string"),
            ("payload_type", "string"),
            ("payload", "string"),
            ("chancesign_version", "string"),
        ]
    )


class PayloadType(ABC):
    """Converts payloads to and from their stored JSON text."""

    @abstractmethod
    def wrap(self, data: Any) -> str:
        ...

    @abstractmethod
    def unwrap(self, json_str: str) -> Any:
        ...


class JSONPayloadType(PayloadType):
    """Plain JSON. Objects with a ``to_dict()`` (analysis results) are stored as that dict."""

    def wrap(self, data: Any) -> str:
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        return json.dumps(data, separators=(",", ":"), allow_nan=True)

    def unwrap(self, json_str: str) -> Any:
        return json.loads(json_str)


class PayloadTypeRegistry:
    """Registry for payload type handlers."""

    _handlers: Dict[str, PayloadType] = {}
    _default_handler = JSONPayloadType()

    @classmethod
    def register(cls, payload_type: str, handler: PayloadType) -> None:
        cls._handlers[payload_type] = handler

    @classmethod
    def get_handler(cls, payload_type: str) -> PayloadType:
        """Handler for ``payload_type``, falling back to plain JSON."""
        return cls._handlers.get(payload_type, cls._default_handler)

    @classmethod
    def wrap(cls, payload_type: str, data: Any) -> str:
        return cls.get_handler(payload_type).wrap(data)

    @classmethod
    def unwrap(cls, payload_type: str, json_str: str) -> Any:
        return cls.get_handler(payload_type).unwrap(json_str)


class Ledger:
    """
    Append-only event store for one or more monitoring sessions.

    Responsibilities:
    - Table lifecycle on the ibis backend
    - Automatic ledger_name and chancesign_version injection
    - Payload wrapping/unwrapping via PayloadTypeRegistry

    Filtering and aggregation are left to callers as ibis expressions.
    """

    def __init__(
        self,
        connection: BaseBackend,
        ledger_name: str = "default",
        table_name: str = "ledger",
    ):
        """Initialize ledger with connection and names.

        Parameters
        ----------
        connection : BaseBackend
            Ibis backend connection
        ledger_name : str
            Name of this ledger instance; several ledgers may share a table
        table_name : str
            Name of the table in the backend
        """
        self.connection = connection
        self.ledger_name = ledger_name
        self.table_name = table_name
        self._ensure_table_exists()

    def _ensure_table_exists(self) -> None:
        if self.table_name not in self.connection.list_tables():
            logger.debug("creating ledger table %r", self.table_name)
            self.connection.create_table(self.table_name, schema=get_ledger_schema())

    @property
    def table(self) -> Table:
        """
        Ibis table filtered to this ledger's name.

        Examples
        --------
        >>> conn = create_test_connection("duckdb")
        >>> ledger = Ledger(conn, "session_ledger")
        >>> stats = ledger.table.filter(ledger.table.namespace == "stats")
        >>> int(stats.count().execute())
        0
        """
        table = self.connection.table(self.table_name)
        return table.filter(table.ledger_name == self.ledger_name)

    @property
    def raw_table(self) -> Table:
        """Unfiltered table, for queries across ledgers."""
        return self.connection.table(self.table_name)

    def write_event(
        self,
        *,
        time_index: Union[TimeIndex, str, int],
        namespace: NamespaceLike,
        kind: str,
        session_id: Union[SessionId, str],
        step_key: Union[StepKey, str],
        payload_type: str,
        payload: Any,
        tag: Optional[str] = None,
        ts: Optional[datetime] = None,
    ) -> None:
        """Append one event.

        Parameters
        ----------
        time_index : TimeIndex, str or int
            Position of the event in the session (usually the trial count)
        namespace : NamespaceLike
            Event namespace
        kind : str
            Event kind
        session_id : SessionId or str
            Session the event belongs to
        step_key : StepKey or str
            Step within the session
        payload_type : str
            Payload type used for wrap/unwrap
        payload : Any
            Payload data, or a result object exposing ``to_dict()``
        tag : str, optional
            Optional tag for filtering
        ts : datetime, optional
            Event time, defaults to now; stored as naive UTC
        """
        if not kind:
            raise InvalidArgument("Ledger events need a non-empty kind")
        if ts is None:
            ts = datetime.now(timezone.utc)
        elif ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)

        record = {
            "uuid": str(uuid_module.uuid4()),
            "ledger_name": self.ledger_name,
            "time_index": str(time_index),
            "ts": ts.astimezone(timezone.utc).replace(tzinfo=None),
            "namespace": str(namespace),
            "kind": kind,
            "entity": f"{session_id}#{step_key}",
            "snapshot_id": str(step_key),
            "tag": tag or "",
            "payload_type": payload_type,
            "payload": PayloadTypeRegistry.wrap(payload_type, payload),
            "chancesign_version": __version__,
        }
        self.connection.insert(self.table_name, pd.DataFrame([record]))

    def unwrap_payload(self, payload_type: str, payload_json: str) -> Any:
        return PayloadTypeRegistry.unwrap(payload_type, payload_json)

    def unwrap_results(self, df: pd.DataFrame) -> List[Dict[str, Any]]:
        """
        Records of an executed query with their payloads decoded.

        Parameters
        ----------
        df : pandas.DataFrame
            Query results with payload and payload_type columns

        Returns
        -------
        List[Dict[str, Any]]
            Records with unwrapped payloads
        """
        records: List[Dict[str, Any]] = df.to_dict("records")
        for record in records:
            if "payload" in record and "payload_type" in record:
                record["payload"] = self.unwrap_payload(
                    record["payload_type"], record["payload"]
                )
        return records


def create_test_connection(backend: str = "duckdb") -> BaseBackend:
    """Create an in-memory connection.

    Parameters
    ----------
    backend : str
        Only "duckdb" is supported

    Examples
    --------
    >>> conn = create_test_connection("duckdb")
    >>> ledger = Ledger(conn, "test")
    >>> ledger.write_event(
    ...     time_index="1", namespace=Namespace.STATS, kind="test",
    ...     session_id="s1", step_key="1", payload_type="TestData",
    ...     payload={"value": 42}
    ... )
    >>> records = ledger.unwrap_results(ledger.table.execute())
    >>> records[0]["payload"]["value"]
    42
    """
    if backend == "duckdb":
        return ibis.duckdb.connect(":memory:")
    raise InvalidArgument(f"Unsupported backend: {backend}. Use 'duckdb'.")
