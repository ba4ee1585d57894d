from __future__ import annotations

from abc import ABC, abstractmethod

from marketplace.domain.entities.commission import CommissionConfig


class CommissionStorePort(ABC):
    @abstractmethod
    def latest(self) -> CommissionConfig | None:
        """Head of the version chain (highest version)."""
        raise NotImplementedError

    @abstractmethod
    def append(self, config: CommissionConfig) -> CommissionConfig:
        """Insert a new version. Existing versions are never modified."""
        raise NotImplementedError

    @abstractmethod
    def history(self) -> list[CommissionConfig]:
        """All versions, oldest first."""
        raise NotImplementedError
