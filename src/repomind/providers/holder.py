from collections.abc import Callable


class ProviderHolder[T]:
    """Owns a lazily created provider instance.

    The instance is built by `factory` on first use and reused until `reset` is called. Tests and embedding
    applications can create their own holder, or `set` an instance directly.
    """

    factory: Callable[[], T]
    _instance: T | None

    def __init__(self, factory: Callable[[], T]):
        self.factory = factory
        self._instance = None

    def get(self) -> T:
        if self._instance is None:
            self._instance = self.factory()

        return self._instance

    def set(self, instance: T) -> None:
        self._instance = instance

    def reset(self) -> None:
        self._instance = None

    @property
    def is_initialized(self) -> bool:
        return self._instance is not None
