"""Receipt rewards backend.

This package verifies photographed purchase receipts and awards loyalty
points for them. It contains the database models, Pydantic schemas,
the pipeline services (extraction, consensus, sanity checks, duplicate
ledger, award recorder) and the FastAPI routers that expose them.

To run the API locally you can execute:

```bash
uvicorn rewards.api.main:app --reload
```

The default configuration uses a local SQLite database stored in
``rewards.db``. You can override configuration values using environment
variables or a ``.env`` file at the project root.
"""

__all__: list[str] = []
