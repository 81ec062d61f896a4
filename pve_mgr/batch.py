#!/usr/bin/env python3
"""Batch action execution over selector-resolved targets."""

import logging
from typing import Any, Callable, List, Optional

from .records import ActionResult
from .selector import SelectorResolver

logger = logging.getLogger(__name__)

ActionFn = Callable[[str, int], Any]


class BatchExecutor:
    """Run one action against every target a selector resolves to."""

    def __init__(self, resolver: SelectorResolver, formatter, noun: str = 'containers'):
        """Initialize BatchExecutor.

        Args:
            resolver: Selector resolver for the resource kind
            formatter: OutputFormatter used to render results
            noun: Plural resource noun used in the "nothing matched" error
        """
        self.resolver = resolver
        self.formatter = formatter
        self.noun = noun

    def execute(self, targets, action_fn: ActionFn) -> List[ActionResult]:
        """Invoke action_fn per target, isolating failures.

        Args:
            targets: Resolved targets, in order
            action_fn: Callable taking (node, vmid); its return value is the
                success message

        Returns:
            One ActionResult per target, in the same order
        """
        results = []
        for target in targets:
            result = ActionResult.for_target(target)
            try:
                message = action_fn(target.node, target.vmid)
                result.message = '' if message is None else str(message)
            except Exception as e:
                logger.warning(f"Action failed for {target.label} ({target.node}:{target.vmid}): {e}")
                result.fail(str(e))
            results.append(result)
        return results

    def run_batch(self, title: str, selector: Optional[str], format_style: Optional[str],
                  action_fn: ActionFn) -> str:
        """Resolve a selector, run the action and render the report.

        Args:
            title: Report title, e.g. "Start Containers"
            selector: Selector string
            format_style: 'json' for a JSON array, anything else for text
            action_fn: Per-target action

        Returns:
            Rendered report, or a JSON error payload when nothing matched or
            the selector could not be resolved
        """
        try:
            targets = self.resolver.resolve(selector)
        except Exception as e:
            logger.error(f"Failed to resolve selector {selector!r}: {e}")
            return self.formatter.error_payload(f"failed to {title.lower()}", e)

        if not targets:
            return self.formatter.error_payload(
                title.lower(), f"No {self.noun} matched the selector", selector=selector)

        results = self.execute(targets, action_fn)
        succeeded = sum(1 for r in results if r.ok)
        logger.info(f"{title}: {succeeded}/{len(results)} succeeded")

        if (format_style or '').lower() == 'json':
            return self.formatter.format_json([r.to_dict() for r in results])
        return self.formatter.render_action_results(title, results)
