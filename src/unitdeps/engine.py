"""Build actions: artifact producers, memoization and tool invocation."""

from __future__ import annotations

import hashlib
import subprocess
import tempfile
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from pathlib import Path
from typing import Any

from filelock import FileLock  # type: ignore[import]
from pydantic import PositiveInt, validate_call

from .build import Build
from .config import Config
from .exceptions import ArtifactError, ToolError
from .logger import logger, set_level

__all__ = [
    "Engine",
    "run_subprocess",
    "get_engine",
    "configure",
    "reset",
]

Runner = Callable[[Sequence[str]], str]

# Singleton instance
_engine: "Engine" | None = None
_engine_lock = threading.Lock()


def run_subprocess(argv: Sequence[str]) -> str:
    """Run ``argv`` and return its standard output."""
    try:
        proc = subprocess.run(list(argv), capture_output=True, text=True, check=False)
    except OSError as e:
        raise ToolError(f"cannot run {argv[0]}: {e}") from e
    if proc.returncode != 0:
        raise ToolError(
            f"{' '.join(argv)} exited with code {proc.returncode}:\n{proc.stderr.rstrip()}"
        )
    return proc.stdout


class Engine:
    """Registry of artifact producers for one build.

    A rule is the single :class:`Build` that writes a given path. Rules are
    registered eagerly and run lazily, when something reads their target.
    """

    def __init__(
        self,
        config: Config | Mapping[str, Any] | Path | str | None = None,
        *,
        workers: int | None = None,
        runner: Runner | None = None,
    ):
        self.config = config if isinstance(config, Config) else Config(config)
        self.workers = workers or int(self.config.workers)
        self.runner: Runner = runner or run_subprocess

        self.tool_runs = 0
        self._lock = threading.RLock()
        self._rules: dict[Path, Build] = {}
        self._memo: dict[str, Build] = {}

    def add_rule(self, target: Path | str, action: Build) -> Build:
        """Register ``action`` as the producer of ``target``.

        Only the first registration for a target is kept; the producer in
        effect is returned.
        """
        target = Path(target)
        with self._lock:
            existing = self._rules.get(target)
            if existing is not None:
                logger.debug("rule for {} already registered", target)
                return existing
            self._rules[target] = action
        logger.debug("registered rule for {}", target)
        return action

    def has_rule(self, target: Path | str) -> bool:
        with self._lock:
            return Path(target) in self._rules

    def produce(self, target: Path | str) -> None:
        """Run the producer of ``target`` if one is registered."""
        with self._lock:
            rule = self._rules.get(Path(target))
        if rule is not None:
            rule.force()

    def memoize(self, key: str, factory: Callable[[], Build]) -> Build:
        """Return the build stored under ``key``, creating it on first request."""
        with self._lock:
            b = self._memo.get(key)
            if b is None:
                b = factory()
                self._memo[key] = b
            else:
                logger.debug("memo hit for {}", key)
        return b

    def lines_of(self, path: Path | str) -> Build:
        path = Path(path)

        def read() -> list[str]:
            self.produce(path)
            try:
                text = path.read_text()
            except FileNotFoundError:
                raise ArtifactError(f"{path} does not exist and no rule produces it") from None
            return text.splitlines()

        return Build(read, f"lines of {path}")

    def lock_path(self, target: Path) -> Path:
        """Return the lock file guarding writes to ``target``, outside the source tree."""
        root = Path(self.config.lock_dir) if self.config.lock_dir else Path(tempfile.gettempdir()) / "unitdeps-locks"
        root.mkdir(parents=True, exist_ok=True)
        digest = hashlib.blake2b(str(target.resolve()).encode(), digest_size=16).hexdigest()
        return root / f"{digest}.lock"

    def write(self, target: Path, text: str) -> None:
        ctx = FileLock(str(self.lock_path(target))) if self.config.lock else nullcontext()
        with ctx:
            target.write_text(text)
        logger.debug("wrote {}", target)

    def run(self, argv: Sequence[str], *, stdout_to: Path | str, deps: Iterable[Path] = ()) -> Build:
        """Return a build running ``argv`` with its stdout saved to ``stdout_to``."""
        argv = [str(a) for a in argv]
        target = Path(stdout_to)
        inputs = [Path(d) for d in deps]

        def action() -> None:
            for d in inputs:
                self.produce(d)
            logger.debug("running {}", " ".join(argv))
            with self._lock:
                self.tool_runs += 1
            out = self.runner(argv)
            self.write(target, out)

        return Build(action, f"run {argv[0]} > {target}")

    def merge_files(self, inputs: Build, *, target: Path | str, tag: Any = None) -> Build:
        """Return a build writing the union of some artifact files and names.

        ``inputs`` yields ``(paths, names)``. The names come first, followed
        by the lines of each path; duplicates keep their first position.
        ``tag`` is attached to the returned build.
        """
        target = Path(target)

        def action() -> None:
            paths, names = inputs.force()
            merged: dict[str, None] = dict.fromkeys(names)
            for p in paths:
                merged.update(dict.fromkeys(self.lines_of(p).force()))
            self.write(target, "".join(f"{line}\n" for line in merged))

        return Build(action, f"merge > {target}", tag=tag)

    def gather(self, builds: Iterable[Build]) -> list[Any]:
        """Force ``builds`` and return their values in order."""
        items = list(builds)
        if self.workers <= 1 or len(items) <= 1:
            return [b.force() for b in items]
        with ThreadPoolExecutor(max_workers=min(self.workers, len(items))) as pool:
            futures = [pool.submit(b.force) for b in items]
            return [f.result() for f in futures]


def get_engine() -> "Engine":
    """Get the global Engine instance."""
    if _engine is None:
        raise RuntimeError("Engine is not configured. Call configure() first.")
    return _engine


@validate_call(config={"arbitrary_types_allowed": True})
def configure(
    *,
    config: Config | Mapping[str, Any] | Path | str | None = None,
    workers: PositiveInt | None = None,
    runner: Callable[[Sequence[str]], str] | None = None,
) -> "Engine":
    """Configure the global Engine. Can only be called once.

    Parameters
    ----------
    config:
        Configuration object, mapping or path to YAML file.
    workers:
        Thread count used by :meth:`Engine.gather`. Defaults to the config.
    runner:
        Callable running the dependency tool; receives the argument vector
        and returns its standard output.

    Returns
    -------
    Engine
        The configured Engine instance.
    """
    global _engine
    with _engine_lock:
        if _engine is not None:
            raise RuntimeError("Engine already configured. Call reset() first if needed.")
        _engine = Engine(config, workers=workers, runner=runner)
        set_level(str(_engine.config.log_level))
    return _engine


def reset() -> None:
    """Reset the global Engine. Primarily for testing."""
    global _engine
    with _engine_lock:
        _engine = None
