"""Configuration for the dependency extraction tool and artifact layout."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from omegaconf import DictConfig, OmegaConf

from .exceptions import ConfigurationError
from .logger import logger

__all__ = ["Config", "DEFAULTS"]


DEFAULTS: dict[str, Any] = {
    "tool": "ocamldep",
    "tool_args": ["-modules"],
    "flags": {"intf": "-intf", "impl": "-impl"},
    "suffixes": {"raw": ".d", "resolved": ".all-deps"},
    "strict": False,
    "workers": 4,
    "lock": True,
    # lock files go here; defaults to <tempdir>/unitdeps-locks
    "lock_dir": None,
    "log_level": "INFO",
}


class Config:
    """Store tool and artifact settings using OmegaConf.

    User values are merged over :data:`DEFAULTS`, so a partial mapping or
    YAML file only needs the keys it changes::

        tool: [opam, exec, "--", ocamldep]
        suffixes:
          resolved: .deps
    """

    def __init__(
        self,
        mapping: Mapping[str, Any] | DictConfig | str | Path | None = None,
    ) -> None:
        if isinstance(mapping, (str, Path)):
            try:
                user = OmegaConf.load(str(mapping))
            except Exception as e:
                raise ConfigurationError(f"Failed to load config from {mapping}: {e}") from e
        else:
            user = OmegaConf.create(mapping or {})
        try:
            conf = OmegaConf.merge(OmegaConf.create(DEFAULTS), user)
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
        object.__setattr__(self, "_conf", conf)
        self._check()

    def __getattr__(self, name: str) -> Any:
        """Allow attribute-style access to config values."""
        if name.startswith("_"):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")
        try:
            return self._conf[name]
        except (KeyError, TypeError):
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        """Allow attribute-style setting of config values."""
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self._conf[name] = value

    def _check(self) -> None:
        if not self.tool_command():
            raise ConfigurationError("'tool' must name a program")
        if int(self._conf.workers) < 1:
            raise ConfigurationError(f"'workers' must be at least 1, got {self._conf.workers}")
        for key in ("raw", "resolved"):
            if not str(self._conf.suffixes[key]):
                raise ConfigurationError(f"'suffixes.{key}' must not be empty")
        try:
            logger.level(str(self._conf.log_level))
        except ValueError:
            raise ConfigurationError(f"unknown 'log_level' {self._conf.log_level!r}") from None

    def tool_command(self) -> list[str]:
        """Return the program and its fixed leading arguments."""
        tool = self._conf.tool
        if OmegaConf.is_list(tool):
            prog = [str(t) for t in tool]
        else:
            prog = [str(tool)] if tool else []
        if not prog:
            return []
        return prog + [str(a) for a in self._conf.tool_args]

    def flag(self, kind: str) -> str:
        return str(self._conf.flags[kind])

    def suffix(self, which: str) -> str:
        return str(self._conf.suffixes[which])

    def to_dict(self) -> dict[str, Any]:
        return OmegaConf.to_container(self._conf, resolve=True)  # type: ignore[return-value]
