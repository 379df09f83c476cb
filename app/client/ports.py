from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable


@dataclass(frozen=True)
class WindowMessage:
    origin: str
    data: dict[str, Any] = field(default_factory=dict)


MessageListener = Callable[[WindowMessage], None]


@dataclass(frozen=True)
class ScreenGeometry:
    """Position and outer size of the opener window."""

    x: int = 0
    y: int = 0
    width: int = 1280
    height: int = 800


class PopupHandle(ABC):
    @property
    @abstractmethod
    def closed(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError


class PopupOpener(ABC):
    @abstractmethod
    def open(self, url: str, name: str, features: str) -> PopupHandle | None:
        """Open a named popup window. Returns None when the popup was blocked."""
        raise NotImplementedError


class MessageChannel(ABC):
    @abstractmethod
    def add_listener(self, listener: MessageListener) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_listener(self, listener: MessageListener) -> None:
        raise NotImplementedError
