"""Customer request lookups. Requests are created by the intake flow; offers only mark them."""

from uuid import UUID

from clients.postgres_client import PostgresClient, Transaction
from core.models import CustomerRequest, RequestStatus


class RequestStore:
    """Read access to requests plus the status flip an offer makes."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def _db(self, tx: Transaction | None):
        return tx if tx is not None else self.postgres

    def get_by_id(
        self,
        request_id: UUID,
        tx: Transaction | None = None,
        for_update: bool = False,
    ) -> CustomerRequest | None:
        query = "SELECT * FROM requests WHERE id = %s"
        if for_update:
            query += " FOR UPDATE"
        row = self._db(tx).execute_single(query, (request_id,))
        if row is None:
            return None
        return CustomerRequest.model_validate(row)

    def update_status(
        self,
        request_id: UUID,
        status: RequestStatus,
        tx: Transaction | None = None,
    ) -> CustomerRequest:
        row = self._db(tx).execute_returning(
            "UPDATE requests SET status = %s WHERE id = %s RETURNING *",
            (status.value, request_id)
        )[0]
        return CustomerRequest.model_validate(row)
