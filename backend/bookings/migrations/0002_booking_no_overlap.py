"""Reject overlapping active bookings at the database level on PostgreSQL."""

from django.db import migrations

ACTIVE = "('pending', 'accepted', 'confirmed')"

CREATE_CONSTRAINT = f"""
CREATE EXTENSION IF NOT EXISTS btree_gist;
ALTER TABLE bookings_booking
    ADD CONSTRAINT bookings_no_overlapping_active
    EXCLUDE USING gist (
        listing_id WITH =,
        daterange(check_in, check_out, '[)') WITH &&
    )
    WHERE (status IN {ACTIVE});
"""

DROP_CONSTRAINT = """
ALTER TABLE bookings_booking DROP CONSTRAINT IF EXISTS bookings_no_overlapping_active;
"""


def add_exclusion_constraint(apps, schema_editor):
    if schema_editor.connection.vendor != "postgresql":
        return
    schema_editor.execute(CREATE_CONSTRAINT)


def drop_exclusion_constraint(apps, schema_editor):
    if schema_editor.connection.vendor != "postgresql":
        return
    schema_editor.execute(DROP_CONSTRAINT)


class Migration(migrations.Migration):

    dependencies = [
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(add_exclusion_constraint, drop_exclusion_constraint),
    ]
