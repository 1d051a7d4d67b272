"""Infrastructure layer: data-service client, session state and observability."""
