"""
Filter hooks that let callers rewrite values at fixed extension points.

Hooks used by the compressor:
  part_url  → public URL of a cache artifact; extra arg: "head" or "foot"
  css_url() → every url()/@import target left in combined CSS
"""

from typing import Callable, Optional

from .logger import get_module_logger

logger = get_module_logger("hooks")


class HookApi:
    """Priority-ordered filter registry."""

    def __init__(self):
        # hook -> priority -> list of (function, accepted_args)
        self._hooks: dict[str, dict[int, list[tuple]]] = {}

    def add_filter(
        self,
        hook: str,
        function: Callable,
        priority: int = 10,
        accepted_args: int = 1
    ) -> None:
        """
        Register a filter.

        Args:
            hook: Hook name
            function: Callable receiving the value (plus extra args) and returning it
            priority: Lower runs first; same-priority filters run in insertion order
            accepted_args: How many of (value, *args) the function receives
        """
        filters = self._hooks.setdefault(hook, {}).setdefault(priority, [])
        filters[:] = [f for f in filters if f[0] is not function]
        filters.append((function, accepted_args))

    def remove_filter(self, hook: str, function: Callable, priority: Optional[int] = None) -> bool:
        """Remove a filter; with no priority, from every priority. True if something was removed."""
        priorities = self._hooks.get(hook, {})
        removed = False
        for level in list(priorities):
            if priority is not None and level != priority:
                continue
            kept = [f for f in priorities[level] if f[0] is not function]
            if len(kept) != len(priorities[level]):
                removed = True
            if kept:
                priorities[level] = kept
            else:
                del priorities[level]
        if not priorities:
            self._hooks.pop(hook, None)
        return removed

    def has_filter(self, hook: str) -> bool:
        return bool(self._hooks.get(hook))

    def apply_filters(self, hook: str, value, *args):
        """Run `value` through every filter on `hook`; unchanged when there are none."""
        priorities = self._hooks.get(hook)
        if not priorities:
            return value

        for priority in sorted(priorities):
            for function, accepted_args in priorities[priority]:
                call_args = (value,) + args
                value = function(*call_args[:max(accepted_args, 1)])
        logger.debug(f"Applied filters for hook: {hook}")
        return value
