"""GUI-agnostic tree engine: store, mutation services and session facade."""
