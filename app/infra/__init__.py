from app.infra.repositories import (
    InMemoryRepository,
    RepositoryError,
    SigmRepository,
    SupabaseRepository,
    build_repository,
)

__all__ = [
    "SigmRepository",
    "InMemoryRepository",
    "SupabaseRepository",
    "RepositoryError",
    "build_repository",
]
