import json
import logging
import sys
import time
from typing import Any, Callable, Dict, List, TypeVar

import requests
from requests import HTTPError
from tqdm import tqdm

from ..config import EndpointSettings
from ..constants import ID_FIELD
from ..errors import TransportError
from ..executors import RecordExecutor
from ..models import EntityDescriptor, Operation, QueryContext, Side
from .client import ServiceClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

_WRITE_METHODS = {
    Operation.INSERT: "POST",
    Operation.UPDATE: "PATCH",
    Operation.UPSERT: "PUT",
    Operation.DELETE: "DELETE",
}


class RestExecutor(RecordExecutor):
    """
    Record access for a live service.

    Queries are paged with ``limit``/``offset`` until a short page comes
    back. Writes are sent in chunks of ``batch_size`` to
    ``<entity>/batch``. Timeouts and connection errors are retried.
    """

    def __init__(self, client: ServiceClient, settings: EndpointSettings,
                 retry_delay: float = 5.0) -> None:
        self._client = client
        self.settings = settings
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(cls, settings: EndpointSettings) -> "RestExecutor":
        return cls(ServiceClient(settings.url, settings.token, settings.timeout), settings)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query(self, side: Side, context: QueryContext) -> List[Dict[str, Any]]:
        """Fetch all matching records, paging until completion."""
        entity = context.entity.name
        limit = self.settings.page_size
        params: Dict[str, Any] = {"fields": ",".join(context.fields), "limit": limit}
        if not context.all_records and (context.filters or context.where):
            params["filter"] = json.dumps({"any": context.filters, "all": context.where})

        records: List[Dict[str, Any]] = []
        offset = 0
        with tqdm(desc=f"{side.value} {entity}", unit="rec",
                  disable=not sys.stdout.isatty()) as bar:
            while True:
                params["offset"] = offset
                data = self._with_retries(
                    f"query {entity}", lambda: self._client.get(entity, params=dict(params)).json())
                batch = _records_of(data)
                records.extend(batch)
                bar.update(len(batch))
                if len(batch) < limit:
                    break
                offset += limit
        return records

    def count(self, side: Side, context: QueryContext) -> int:
        data = self._with_retries(f"count {context.entity.name}",
                                  lambda: self._client.get(f"{context.entity.name}/count").json())
        if isinstance(data, dict) and "count" in data:
            return int(data["count"])
        return len(self.query(side, context))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def write(self, side: Side, operation: Operation, entity: EntityDescriptor,
              records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if operation == Operation.READONLY:
            raise ValueError(f"{entity.name} is readonly")
        method = _WRITE_METHODS[operation]
        size = max(1, self.settings.batch_size)
        chunks = [records[i:i + size] for i in range(0, len(records), size)]

        written: List[Dict[str, Any]] = []
        for chunk in tqdm(chunks, desc=f"{operation.value} {entity.name}", unit="batch",
                          disable=not sys.stdout.isatty()):
            data = self._with_retries(
                f"{operation.value} {entity.name}",
                lambda: self._client.send(method, f"{entity.name}/batch", {"records": chunk}).json())
            results = _records_of(data)
            if len(results) != len(chunk):
                raise TransportError(
                    f"{operation.value} {entity.name}: {len(results)} result(s) "
                    f"for {len(chunk)} record(s)")
            for record, result in zip(chunk, results):
                row = dict(result)
                if not row.get("success", True):
                    row[ID_FIELD] = ""
                elif not row.get(ID_FIELD) and record.get(ID_FIELD):
                    row[ID_FIELD] = record[ID_FIELD]
                written.append(row)
        logger.info("%s %s: %d record(s) sent", operation.value, entity.name, len(records))
        return written

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------------
    # Utilities
    # -------------------------------------------------------------------------

    def _with_retries(self, what: str, call: Callable[[], T]) -> T:
        attempts = max(1, self.settings.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                return call()
            except (requests.Timeout, requests.ConnectionError) as err:
                if attempt == attempts:
                    raise TransportError(f"{what} failed after {attempts} attempt(s)") from err
                logger.warning("%s: %s, retrying (%d/%d)", what, err, attempt, attempts)
                time.sleep(self.retry_delay)
            except HTTPError as err:
                status = err.response.status_code if err.response is not None else "?"
                raise TransportError(f"{what} failed with HTTP {status}") from err
            except ValueError as err:
                raise TransportError(f"{what} returned an invalid response") from err
        raise TransportError(f"{what} failed")


def _records_of(data: Any) -> List[Dict[str, Any]]:
    batch = data.get("records", data) if isinstance(data, dict) else data
    if not isinstance(batch, list):
        raise TransportError(f"Unexpected records format: {data!r}")
    return batch
