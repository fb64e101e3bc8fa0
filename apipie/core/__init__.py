"""apipie.core — Data model, configuration and error types."""
