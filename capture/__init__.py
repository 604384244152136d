"""Voice capture orchestration: session controller, trigger relay and durable handoff queue."""
