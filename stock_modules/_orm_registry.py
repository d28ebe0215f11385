"""
Module ORM Registry (``stock_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``stock_kernel.db.engine.create_tables`` / ``drop_tables`` and by the test
suite.  MUST NOT be imported at module level by ``stock_kernel`` or
``stock_services``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``stock_modules.*.orm`` module.

    Kernel tables (batches, movements, transactions) are registered first;
    module tables reference them only by id.  Idempotent.
    """
    import stock_kernel.models  # noqa: F401
    # fmt: off
    import stock_modules.expense.orm  # noqa: F401
    import stock_modules.sales.orm  # noqa: F401
    import stock_modules.wastage.orm  # noqa: F401
    # fmt: on
