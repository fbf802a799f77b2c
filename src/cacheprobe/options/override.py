import logging
from typing import Dict, Mapping, Set

from .. import constants
from ..datacls.diagnostics import Diagnostics
from ..exceptions import OptionParseError
from .option import OptionKind
from .option_set import OptionSet, is_legacy_option

logger = logging.getLogger(__name__)


class OverrideEngine:
    """
    Applies a string-keyed override map onto an option set.

    Overrides never replace the immutable options, warn when they shadow an
    option the provider set explicitly, and collect every parse failure
    instead of stopping at the first one.
    """

    def __init__(self, options: OptionSet, provenance: Set[str]):
        self.options = options
        self.provenance = provenance

    def apply(self, overrides: Mapping[str, str]) -> Diagnostics:
        """Apply `overrides` in key order and return the diagnostics produced."""
        diags = Diagnostics()
        for key in sorted(overrides):
            self._apply_one(key, overrides[key], diags)
        self.check_exclusive(diags)
        return diags

    def passthrough(self, overrides: Mapping[str, str]) -> Dict[str, str]:
        """
        Entries that go to the environment verbatim: keys that are not options,
        and legacy options, which are applied and also passed through.
        """
        return {
            key: val for key, val in overrides.items()
            if key not in self.options or is_legacy_option(key)
        }

    def _apply_one(self, key: str, raw: str, diags: Diagnostics) -> None:
        if key in constants.IMMUTABLE_OPTIONS:
            diags.add_warning(
                "Cannot override required option",
                f"The key {key!r} in extra_env cannot be overridden.",
                key=key,
            )
            return

        if key not in self.options:
            logger.debug(f"[OverrideEngine] '{key}' is not an option, passing it through.")
            return

        if key in self.provenance:
            diags.add_warning(
                "Overriding provider option",
                f"The key {key!r} in extra_env overrides an option set on the provider.",
                key=key,
            )

        opt = self.options[key]
        previous = opt.get()
        # List options append on set; reset first so the override replaces the value.
        if opt.kind is OptionKind.STRING_LIST:
            opt.reset()
        try:
            opt.set(raw)
        except OptionParseError as e:
            opt.assign(previous)
            diags.add_error(
                "Invalid value for option",
                f"The key {key!r} in extra_env has an invalid value: {e.reason}",
                key=key,
            )
            return
        logger.debug(f"[OverrideEngine] '{key}' overridden from extra_env.")

    def check_exclusive(self, diags: Diagnostics) -> None:
        """At most one option of each exclusive group may be set."""
        for group in constants.EXCLUSIVE_OPTION_GROUPS:
            present = [key for key in group if not self.options[key].is_zero()]
            if len(present) > 1:
                diags.add_error(
                    "Cannot set more than one option of an exclusive group",
                    f"Both {' and '.join(present)} have been set.",
                    key=present[0],
                )
