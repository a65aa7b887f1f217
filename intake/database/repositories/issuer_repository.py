from psycopg.rows import dict_row

from intake.database.connection import get_connection
from intake.database.models import IssuerProfile


class IssuerRepository:
    """Database operations for the issuers table."""

    def upsert(self, profile: IssuerProfile) -> IssuerProfile:
        """Create the profile or fill in only the fields that are still null.

        First write wins per field: COALESCE keeps any value already stored.
        Returns the profile as persisted.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO issuers (issuer_id, name, tax_id, category)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (issuer_id) DO UPDATE SET
                        name = COALESCE(issuers.name, EXCLUDED.name),
                        tax_id = COALESCE(issuers.tax_id, EXCLUDED.tax_id),
                        category = COALESCE(issuers.category, EXCLUDED.category),
                        updated_at = NOW()
                    RETURNING issuer_id, name, tax_id, category
                    """,
                    (profile.issuer_id, profile.name, profile.tax_id, profile.category),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError(f"Upsert of issuer {profile.issuer_id} returned no row")

        return IssuerProfile(
            issuer_id=row["issuer_id"],
            name=row["name"],
            tax_id=row["tax_id"],
            category=row["category"],
        )

    def find_by_id(self, issuer_id: str) -> IssuerProfile | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT issuer_id, name, tax_id, category FROM issuers WHERE issuer_id = %s",
                    (issuer_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return IssuerProfile(
            issuer_id=row["issuer_id"],
            name=row["name"],
            tax_id=row["tax_id"],
            category=row["category"],
        )
