"""
Module ORM Registry (``settlement_modules._orm_registry``).

Responsibility
--------------
Ensure all SQLAlchemy ORM models are imported so that ``Base.metadata``
contains their table definitions before tables are created or dropped.

Usage
-----
``settlement_kernel.db.engine.create_tables()`` and ``drop_tables()`` call
``import_all_orm_models()`` before touching the metadata.
"""


def import_all_orm_models() -> None:
    """Import kernel and module ORM models.  Idempotent."""
    # fmt: off
    import settlement_kernel.services.invoice_number_service  # noqa: F401  # number counters
    import settlement_modules.lease_revenue.orm  # noqa: F401
    # fmt: on
