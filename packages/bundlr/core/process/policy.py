"""Exit-code success policies, looked up by executable base name."""

from __future__ import annotations

from pathlib import Path, PureWindowsPath

from pydantic import BaseModel, ConfigDict

from bundlr.core.config.models import ExitCodePolicyConfig


class ExitCodePolicy(BaseModel):
    """Decides whether an exit code means success.

    Either an explicit set of success codes, or a threshold below which every
    non-negative code succeeds (robocopy: 0-7 success, 8+ error).
    """

    model_config = ConfigDict(frozen=True)

    success_codes: frozenset[int] | None = None
    success_below: int | None = None

    def is_success(self, exit_code: int | None) -> bool:
        if exit_code is None:
            return False
        if self.success_codes is not None and exit_code in self.success_codes:
            return True
        if self.success_below is not None:
            return 0 <= exit_code < self.success_below
        return False

    @classmethod
    def zero_only(cls) -> ExitCodePolicy:
        return cls(success_codes=frozenset({0}))

    @classmethod
    def from_config(cls, config: ExitCodePolicyConfig) -> ExitCodePolicy:
        codes = frozenset(config.success_codes) if config.success_codes is not None else None
        return cls(success_codes=codes, success_below=config.success_below)


BUILTIN_POLICIES: dict[str, ExitCodePolicy] = {
    "robocopy": ExitCodePolicy(success_below=8),
    # 24: some files vanished during transfer, expected on live install dirs
    "rsync": ExitCodePolicy(success_codes=frozenset({0, 24})),
    "xcopy": ExitCodePolicy.zero_only(),
}


def tool_key(executable: str | Path) -> str:
    """Normalize an executable path to a policy lookup key (lower-case stem)."""
    raw = str(executable)
    # Handle Windows paths even when running elsewhere.
    name = PureWindowsPath(raw).name if "\\" in raw else Path(raw).name
    lowered = name.lower()
    for suffix in (".exe", ".cmd", ".bat", ".com"):
        if lowered.endswith(suffix):
            return lowered[: -len(suffix)]
    return lowered


class ExitCodePolicyRegistry:
    """Maps executable base names to exit-code policies.

    Unknown tools get the zero-is-success default.
    """

    def __init__(
        self,
        policies: dict[str, ExitCodePolicy] | None = None,
        include_builtins: bool = True,
    ) -> None:
        self._policies: dict[str, ExitCodePolicy] = {}
        if include_builtins:
            self._policies.update(BUILTIN_POLICIES)
        for name, policy in (policies or {}).items():
            self.register(name, policy)
        self._default = ExitCodePolicy.zero_only()

    @classmethod
    def from_config(cls, configs: dict[str, ExitCodePolicyConfig]) -> ExitCodePolicyRegistry:
        return cls({name: ExitCodePolicy.from_config(cfg) for name, cfg in configs.items()})

    def register(self, name: str, policy: ExitCodePolicy) -> None:
        self._policies[tool_key(name)] = policy

    def resolve(self, executable: str | Path) -> ExitCodePolicy:
        return self._policies.get(tool_key(executable), self._default)
