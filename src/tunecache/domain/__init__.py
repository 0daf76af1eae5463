"""Domain layer - entities, DTOs, ports and exceptions."""
