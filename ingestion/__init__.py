"""
Batch ingestion pipeline for upstream weather forecasts.

Modules:
    client: Upstream weather API client with bounded fixed-delay retry
    engine: Ingestion cycle orchestrator (discovery, pagination, lifecycle,
        retention, cleanup of vanished batches)
    scheduler: APScheduler integration with graceful-shutdown draining
    data_manager: Process entry point wiring settings, stores and scheduler

Architecture:
    Scheduler → IngestionEngine → WeatherApiClient (reads)
                                → BatchStore + PointStore (writes)

    Batches within a cycle are ingested concurrently; pages within one
    batch are fetched strictly in order. Every write is idempotent, so
    ingestion is at-least-once with duplicate suppression.

Usage:
    from ingestion.client import WeatherApiClient
    from ingestion.engine import IngestionEngine

Example:
    client = WeatherApiClient("https://weather.example.com")
    engine = IngestionEngine(client, BatchStore(maker), PointStore(maker))

    result = await engine.run_cycle()
    print(f"Ingested {result['outcomes']['completed']} batches")

Error Handling:
    A 404 for a batch is a first-class outcome (BatchUnavailableError)
    that triggers cleanup of that batch only. Transient upstream faults
    are retried by the client; if retries run out the cycle is logged
    and deferred to the next tick.
"""

__all__ = [
    "WeatherApiClient",
    "IngestionEngine",
    "BatchOutcome",
    "IngestionScheduler",
]
