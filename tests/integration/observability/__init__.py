"""OpenTelemetry integration tests, run against the SDK's in-memory exporter."""
