"""Data models for repository identity and approved libraries."""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True, order=True)
class RepositoryKey:
    """Stable ``(owner, name)`` identity for every per-repository record."""

    owner: str
    name: str

    def __post_init__(self) -> None:
        if not self.owner or not self.name or "/" in self.owner or "/" in self.name:
            raise ValueError(f"Invalid repository key: {self.owner!r}/{self.name!r}")

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "RepositoryKey":
        """Parse ``owner/name``; anything else raises ValueError."""
        parts = value.strip().split("/")
        if len(parts) != 2:
            raise ValueError(f"Expected owner/name, got {value!r}")
        return cls(owner=parts[0], name=parts[1])


class ApprovedLibrary(BaseModel):
    """An entry written by the approval workflow.

    Only the identity fields are interpreted here; everything else the
    workflow stores (approver, installation id, notes) is kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    owner: str
    repo: str
    library_name: str | None = None

    @property
    def key(self) -> RepositoryKey:
        return RepositoryKey(self.owner, self.repo)
