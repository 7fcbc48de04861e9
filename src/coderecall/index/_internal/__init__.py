"""Index internals: parsing collaborators, ignore rules, unit derivation, storage."""
