"""Storecast core -- tenancy, persistence and scheduling primitives.

Architecture::

    Layer 1 -- Types & Errors
        errors.py        Structured error hierarchy (StorecastError, ScopeViolation)
        enums.py         Persisted enums (CampaignStage, PublishStatus, ...)
        protocols.py     Connection protocol
        timestamps.py    UTC helpers (stdlib-only)
        settings.py      pydantic-settings configuration
        logging.py       structlog configuration + run context

    Layer 2 -- Database
        dialect.py       SQL dialect abstraction (SQLite, PostgreSQL)
        connection.py    SqliteConnection adapter
        orm/             SQLAlchemy 2.0 table declarations
        schema.py        DDL compiled from the ORM metadata
        models/          Dataclass row models
        repositories/    Tenant-scoped repositories

    Layer 3 -- Domain rules
        tenancy.py       TenantScope + X-Store-ID resolution
        lifecycle.py     Campaign stage / publish status transitions

    Layer 4 -- Scheduling
        scheduling/      Timing backends, exclusivity lease, recurring trigger
"""
