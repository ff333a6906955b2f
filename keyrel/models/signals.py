"""
keyrel Model Signals — save, delete and registration hooks.

Usage:
    from keyrel.models.signals import post_save, post_delete

    @post_save.connect
    async def index_post(sender, instance, created, **kwargs):
        if sender.__name__ == "Post" and created:
            await search.add(instance.id)

    @post_delete.connect(sender=Post)
    def forget(sender, instance_id, **kwargs):
        cache.pop(instance_id, None)

Receivers are called with ``sender`` (the Model class) and keyword
arguments specific to each signal:

    pre_save / post_save      instance, created, dirty
    pre_delete                instance
    post_delete               instance, instance_id
    class_prepared            schema (fired synchronously by Registry.register)
"""

from __future__ import annotations

import contextlib
import inspect
import logging
from typing import Any, Callable, List, Optional, Tuple, Type

logger = logging.getLogger("keyrel.models.signals")

__all__ = [
    "Signal",
    "pre_save",
    "post_save",
    "pre_delete",
    "post_delete",
    "class_prepared",
    "receiver",
]


class Signal:
    """
    A signal that can be connected to receiver functions.

    Receivers can be sync or async callables. A receiver that raises is
    logged and its exception is returned in place of a result; it never
    aborts the operation that fired the signal.

    Features:
        - Sender-based filtering
        - Priority ordering (lower runs first)
        - Temporary connections via context manager
    """

    def __init__(self, name: str):
        self.name = name
        # Each entry: (receiver, sender_filter, priority)
        self._receivers: List[Tuple[Callable, Optional[Type], int]] = []

    def connect(
        self,
        receiver: Callable = None,
        *,
        sender: Optional[Type] = None,
        priority: int = 100,
    ):
        """
        Connect a receiver function. Can be used as a decorator, with or
        without arguments.
        """
        def _decorator(fn: Callable) -> Callable:
            self._add_receiver(fn, sender, priority)
            return fn

        if receiver is not None:
            self._add_receiver(receiver, sender, priority)
            return receiver
        return _decorator

    def _add_receiver(self, fn: Callable, sender: Optional[Type], priority: int) -> None:
        for existing, existing_sender, _ in self._receivers:
            if existing is fn and existing_sender is sender:
                return

        self._receivers.append((fn, sender, priority))
        # Stable sort keeps insertion order for equal priorities
        self._receivers.sort(key=lambda x: x[2])

    def disconnect(self, receiver: Callable, *, sender: Optional[Type] = None) -> bool:
        """Disconnect a receiver. Returns True if it was connected."""
        for i, (fn, s, _) in enumerate(self._receivers):
            if fn is receiver and s is sender:
                self._receivers.pop(i)
                return True
        for i, (fn, _, _) in enumerate(self._receivers):
            if fn is receiver:
                self._receivers.pop(i)
                return True
        return False

    def _matching(self, sender: Type):
        for fn, filter_sender, _ in list(self._receivers):
            if filter_sender is not None and sender is not filter_sender:
                continue
            yield fn

    async def send(self, sender: Type, **kwargs) -> List[Any]:
        """
        Fire the signal, calling all connected receivers in priority order.

        Returns:
            List of return values (or raised exceptions) from receivers
        """
        results = []
        for receiver in self._matching(sender):
            try:
                result = receiver(sender=sender, **kwargs)
                if inspect.isawaitable(result):
                    result = await result
                results.append(result)
            except Exception as exc:
                logger.error(
                    f"Signal '{self.name}' receiver {getattr(receiver, '__name__', receiver)} "
                    f"raised {exc.__class__.__name__}: {exc}"
                )
                results.append(exc)
        return results

    def send_sync(self, sender: Type, **kwargs) -> List[Any]:
        """Fire the signal synchronously (async receivers are skipped)."""
        results = []
        for receiver in self._matching(sender):
            if inspect.iscoroutinefunction(receiver):
                logger.warning(
                    f"Signal '{self.name}': async receiver {receiver.__name__} "
                    f"skipped in sync send"
                )
                continue
            try:
                results.append(receiver(sender=sender, **kwargs))
            except Exception as exc:
                logger.error(
                    f"Signal '{self.name}' receiver {getattr(receiver, '__name__', receiver)} "
                    f"raised {exc.__class__.__name__}: {exc}"
                )
                results.append(exc)
        return results

    @property
    def receivers(self) -> List[Callable]:
        return [fn for fn, _, _ in self._receivers]

    def has_listeners(self, sender: Optional[Type] = None) -> bool:
        if sender is None:
            return bool(self._receivers)
        return any(s is None or s is sender for _, s, _ in self._receivers)

    @contextlib.contextmanager
    def connected(self, fn: Callable, *, sender: Optional[Type] = None, priority: int = 100):
        """
        Temporarily connect ``fn``; it is disconnected on exit.

            with post_save.connected(handler, sender=Post):
                await post.save()
        """
        self._add_receiver(fn, sender, priority)
        try:
            yield
        finally:
            self.disconnect(fn, sender=sender)

    def clear(self) -> None:
        """Remove all receivers (useful for testing)."""
        self._receivers.clear()

    def __repr__(self) -> str:
        return f"<Signal '{self.name}' receivers={len(self._receivers)}>"


# ── Built-in signals ─────────────────────────────────────────────────────────

pre_save = Signal("pre_save")
post_save = Signal("post_save")
pre_delete = Signal("pre_delete")
post_delete = Signal("post_delete")
class_prepared = Signal("class_prepared")


def receiver(signal: Signal, *, sender: Optional[Type] = None):
    """
    Shorthand decorator to connect a function to a signal.

        @receiver(post_save, sender=Post)
        async def on_post_saved(sender, instance, created, **kwargs):
            ...
    """
    def _decorator(fn: Callable) -> Callable:
        signal.connect(fn, sender=sender)
        return fn
    return _decorator
