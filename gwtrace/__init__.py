# Gateway Trace Store
# Device telemetry ingestion and paginated search over a search-indexed backend
#
# Subpackages:
# - gwtrace.muuid: temporal identifiers (primary key, sort key, cursor)
# - gwtrace.query: filter translation and request parameter parsing
# - gwtrace.storage: backend ports, adapters and the store factory
# - gwtrace.trace: models, ingestion and the TraceStore

__version__ = "0.1.0"
