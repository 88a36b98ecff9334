from .attempts import AttemptRepository, AttemptStore, qualified_manifest_id

__all__ = ["AttemptRepository", "AttemptStore", "qualified_manifest_id"]
