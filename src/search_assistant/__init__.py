"""Search-augmented chat backend."""
