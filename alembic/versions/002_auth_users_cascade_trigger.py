"""Delete public.users when the Supabase auth.users row is deleted.

Profiles, roles and notifications follow through their ON DELETE CASCADE keys.

Revision ID: 002_auth_users_cascade_trigger
Revises: 001_entitlement_tables
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "002_auth_users_cascade_trigger"
down_revision: Union[str, None] = "001_entitlement_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    if conn.dialect.name != "postgresql":
        return

    conn.execute(
        sa.text("""
            CREATE OR REPLACE FUNCTION public.handle_auth_user_deleted()
            RETURNS TRIGGER AS $$
            BEGIN
                DELETE FROM public.users
                WHERE supabase_id = OLD.id::text;

                RETURN OLD;
            END;
            $$ LANGUAGE plpgsql SECURITY DEFINER;
        """)
    )

    conn.execute(
        sa.text("""
            DROP TRIGGER IF EXISTS on_auth_user_deleted ON auth.users;

            CREATE TRIGGER on_auth_user_deleted
            AFTER DELETE ON auth.users
            FOR EACH ROW
            EXECUTE FUNCTION public.handle_auth_user_deleted();
        """)
    )


def downgrade() -> None:
    conn = op.get_bind()
    if conn.dialect.name != "postgresql":
        return
    conn.execute(sa.text("DROP TRIGGER IF EXISTS on_auth_user_deleted ON auth.users;"))
    conn.execute(sa.text("DROP FUNCTION IF EXISTS public.handle_auth_user_deleted();"))
