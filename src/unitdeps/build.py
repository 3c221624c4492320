"""Deferred computations that run at most once."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from typing import Any

from .exceptions import BuildCycleError

__all__ = ["Build"]

_PENDING = 0
_RUNNING = 1
_DONE = 2

# guards every Build's state plus the wait-for table below
_state_lock = threading.Lock()
# thread ident -> Build that thread is blocked on
_waiting: dict[int, "Build"] = {}
# thread ident -> builds that thread is computing, innermost last
_stacks: dict[int, list["Build"]] = {}
_local = threading.local()


def _stack() -> list["Build"]:
    try:
        return _local.stack
    except AttributeError:
        _local.stack = []
        with _state_lock:
            _stacks[threading.get_ident()] = _local.stack
        return _local.stack


def _wait_chain(target: "Build", me: int) -> list["Build"] | None:
    """Return the builds leading from ``target`` back to thread ``me``, if any.

    Each build in the result waits, directly or through the builds it is
    computing, on the next one. A blocked owner's stack does not change,
    and the wait-for relation never holds a loop, so the walk terminates.
    """
    chain: list["Build"] = []
    b = target
    while True:
        owner = b._owner
        if owner is None:
            return None
        stack = _stacks.get(owner, [])
        chain.extend(stack[stack.index(b):])
        if owner == me:
            return chain
        nxt = _waiting.get(owner)
        if nxt is None:
            return None
        b = nxt


class Build:
    """A value that is computed when first forced.

    Every instance runs its function at most once. Threads forcing an
    instance that is already running block until it finishes and then get
    the same value, or the same exception. Forcing that would wait on
    itself raises :class:`BuildCycleError` instead of deadlocking.
    """

    __slots__ = ("fn", "label", "tag", "_state", "_value", "_error", "_owner", "_event")

    def __init__(self, fn: Callable[[], Any], label: str | None = None, *, tag: Any = None):
        self.fn: Callable[[], Any] | None = fn
        self.label = label or getattr(fn, "__name__", "build")
        # caller data reported with cycles, e.g. the unit an artifact belongs to
        self.tag = tag
        self._state = _PENDING
        self._value: Any = None
        self._error: BaseException | None = None
        self._owner: int | None = None
        self._event = threading.Event()

    def __repr__(self) -> str:
        state = ("pending", "running", "done")[self._state]
        return f"Build({self.label!r}, {state})"

    @classmethod
    def pure(cls, value: Any, label: str = "pure") -> "Build":
        """Return an already computed build."""
        b = cls(lambda: value, label)
        b._state = _DONE
        b._value = value
        b.fn = None
        b._event.set()
        return b

    @staticmethod
    def all(builds: Iterable["Build"], label: str = "all") -> "Build":
        """Collect the results of ``builds`` in order."""
        items = list(builds)
        return Build(lambda: [b.force() for b in items], label)

    def map(self, fn: Callable[[Any], Any], label: str | None = None) -> "Build":
        return Build(lambda: fn(self.force()), label or self.label)

    @property
    def done(self) -> bool:
        return self._state == _DONE

    def force(self) -> Any:
        """Compute the value, or wait for the thread already computing it."""
        me = threading.get_ident()
        stack = _stack()
        while True:
            with _state_lock:
                if self._state == _DONE:
                    break
                if self._state == _PENDING:
                    self._state = _RUNNING
                    self._owner = me
                    stack.append(self)
                    run = True
                else:
                    chain = _wait_chain(self, me)
                    if chain is not None:
                        cycle = chain + [self]
                        raise BuildCycleError([b.label for b in cycle], [b.tag for b in cycle])
                    _waiting[me] = self
                    event = self._event
                    run = False

            if run:
                return self._run(stack)

            event.wait()
            with _state_lock:
                _waiting.pop(me, None)
            # an interrupted owner puts the build back to pending; retry then

        if self._error is not None:
            raise self._error
        return self._value

    def _run(self, stack: list["Build"]) -> Any:
        try:
            value = self.fn()  # type: ignore[misc]
        except Exception as e:
            self._finish(None, e)
            raise
        except BaseException:
            with _state_lock:
                self._state = _PENDING
                self._owner = None
                event, self._event = self._event, threading.Event()
            event.set()
            raise
        else:
            self._finish(value, None)
            return value
        finally:
            stack.pop()

    def _finish(self, value: Any, error: BaseException | None) -> None:
        with _state_lock:
            self._value = value
            self._error = error
            self._state = _DONE
            self._owner = None
            self.fn = None
        self._event.set()
