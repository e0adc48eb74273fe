"""Merge-queue policy and polling configuration.

Both configurations are immutable for the duration of a pass. They can be
built directly or loaded from ``SLUICE_*`` environment variables:

>>> FilterConfig(min_pr_number=1000).with_dry_run(dry_run=True).dry_run
True

"""

from __future__ import annotations

import dataclasses as dc
import os

APPROVAL_LABEL = "lgtm"
CLA_LABEL = "cla: yes"
REQUIRED_LABELS: tuple[str, ...] = (APPROVAL_LABEL, CLA_LABEL)
NEEDS_OK_TO_MERGE_LABEL = "needs-ok-to-merge"

_DEFAULT_OVERRIDE_LABEL = "ok-to-merge"
_DEFAULT_E2E_EXEMPT_LABEL = "e2e-not-required"
_DEFAULT_E2E_CONTEXT = "Jenkins GCE e2e"
_DEFAULT_POLL_INTERVAL_S = 30.0
_DEFAULT_MERGEABILITY_WAIT_S = 10.0
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""

    @classmethod
    def invalid(cls, env_var: str, raw: str, expected: str) -> ConfigError:
        """Return an error naming the variable and the expected form."""
        return cls(f"{env_var} must be {expected}, got: {raw!r}")


def _env_list(env_var: str) -> tuple[str, ...]:
    """Read a comma-separated list, dropping blanks."""
    raw = os.environ.get(env_var, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_str(env_var: str, default: str) -> str:
    value = os.environ.get(env_var)
    return default if value is None else value.strip()


def _env_bool(env_var: str, *, default: bool) -> bool:
    raw = os.environ.get(env_var)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError.invalid(env_var, raw, "a boolean")


def _env_int(env_var: str, default: int | None, *, minimum: int) -> int | None:
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError.invalid(env_var, raw, "an integer") from exc
    if value < minimum:
        raise ConfigError.invalid(env_var, raw, f"at least {minimum}")
    return value


def _env_seconds(env_var: str, default: float) -> float:
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError.invalid(env_var, raw, "a number of seconds") from exc
    if value < 0:
        raise ConfigError.invalid(env_var, raw, "non-negative")
    return value


@dc.dataclass(frozen=True, slots=True)
class FilterConfig:
    """Policy applied to every merge candidate in a pass.

    Attributes
    ----------
    min_pr_number
        Pull requests numbered below this are ignored.
    additional_user_whitelist
        Non-committer authors trusted to merge without an override label.
    committers
        Static committer list used when the dynamic lookup fails.
    whitelist_override_label
        Label that lets a non-whitelisted author's pull request through.
    dry_run
        When set, no mutating GitHub call is ever made.
    dont_require_e2e_label
        Label exempting a pull request from ``e2e_status_context``. Empty
        disables the exemption.
    e2e_status_context
        Primary status context required unless exempted. Empty means none.
    required_status_contexts
        Further contexts that must have reported before merging.

    """

    min_pr_number: int = 0
    additional_user_whitelist: tuple[str, ...] = ()
    committers: tuple[str, ...] = ()
    whitelist_override_label: str = _DEFAULT_OVERRIDE_LABEL
    dry_run: bool = False
    dont_require_e2e_label: str = _DEFAULT_E2E_EXEMPT_LABEL
    e2e_status_context: str = _DEFAULT_E2E_CONTEXT
    required_status_contexts: tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> FilterConfig:
        """Create the policy from environment variables.

        Reads ``SLUICE_MIN_PR_NUMBER``, ``SLUICE_USER_WHITELIST``,
        ``SLUICE_COMMITTERS``, ``SLUICE_WHITELIST_OVERRIDE_LABEL``,
        ``SLUICE_DRY_RUN``, ``SLUICE_DONT_REQUIRE_E2E_LABEL``,
        ``SLUICE_E2E_STATUS_CONTEXT`` and ``SLUICE_REQUIRED_STATUS_CONTEXTS``.
        List values are comma separated.

        Raises
        ------
        ConfigError
            If a numeric or boolean variable cannot be parsed.

        """
        return cls(
            min_pr_number=_env_int("SLUICE_MIN_PR_NUMBER", 0, minimum=0) or 0,
            additional_user_whitelist=_env_list("SLUICE_USER_WHITELIST"),
            committers=_env_list("SLUICE_COMMITTERS"),
            whitelist_override_label=_env_str(
                "SLUICE_WHITELIST_OVERRIDE_LABEL", _DEFAULT_OVERRIDE_LABEL
            ),
            dry_run=_env_bool("SLUICE_DRY_RUN", default=False),
            dont_require_e2e_label=_env_str(
                "SLUICE_DONT_REQUIRE_E2E_LABEL", _DEFAULT_E2E_EXEMPT_LABEL
            ),
            e2e_status_context=_env_str(
                "SLUICE_E2E_STATUS_CONTEXT", _DEFAULT_E2E_CONTEXT
            ),
            required_status_contexts=_env_list("SLUICE_REQUIRED_STATUS_CONTEXTS"),
        )

    def with_dry_run(self, *, dry_run: bool) -> FilterConfig:
        """Return a copy with ``dry_run`` replaced."""
        return dc.replace(self, dry_run=dry_run)


@dc.dataclass(frozen=True, slots=True)
class PollConfig:
    """Timing for the blocking waits on mergeability and commit status.

    ``max_attempts`` of ``None`` waits indefinitely, which matches how the
    queue historically behaved; set it to bound every polling loop.
    """

    interval_s: float = _DEFAULT_POLL_INTERVAL_S
    max_attempts: int | None = None
    mergeability_wait_s: float = _DEFAULT_MERGEABILITY_WAIT_S

    @classmethod
    def from_env(cls) -> PollConfig:
        """Create from ``SLUICE_POLL_INTERVAL_S``, ``SLUICE_POLL_MAX_ATTEMPTS``
        and ``SLUICE_MERGEABILITY_WAIT_S``."""
        return cls(
            interval_s=_env_seconds("SLUICE_POLL_INTERVAL_S", _DEFAULT_POLL_INTERVAL_S),
            max_attempts=_env_int("SLUICE_POLL_MAX_ATTEMPTS", None, minimum=1),
            mergeability_wait_s=_env_seconds(
                "SLUICE_MERGEABILITY_WAIT_S", _DEFAULT_MERGEABILITY_WAIT_S
            ),
        )
