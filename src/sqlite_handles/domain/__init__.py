"""Domain layer: engine constants, statement states and the error taxonomy."""
