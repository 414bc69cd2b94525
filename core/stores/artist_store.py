"""Artist lookups. Profiles are written by the profile/onboarding flow, not here."""

from uuid import UUID

from clients.postgres_client import PostgresClient, Transaction
from core.models import Artist


class ArtistStore:
    """Read access to artists."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def _db(self, tx: Transaction | None):
        return tx if tx is not None else self.postgres

    def get_by_id(self, artist_id: UUID, tx: Transaction | None = None) -> Artist | None:
        row = self._db(tx).execute_single(
            "SELECT * FROM artists WHERE id = %s",
            (artist_id,)
        )
        if row is None:
            return None
        return Artist.model_validate(row)

    def get_by_user_id(self, user_id: UUID, tx: Transaction | None = None) -> Artist | None:
        """The artist profile owned by a user account, if any."""
        row = self._db(tx).execute_single(
            "SELECT * FROM artists WHERE user_id = %s",
            (user_id,)
        )
        if row is None:
            return None
        return Artist.model_validate(row)
