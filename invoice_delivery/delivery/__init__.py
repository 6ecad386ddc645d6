"""Document delivery layer: channel dispatchers and the delivery orchestrator."""
