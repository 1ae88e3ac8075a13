"""
Leech detection and remediation.

The detector only reports; the caller picks what to do with a leech by
applying the configured LeechAction.
"""

import dataclasses
import logging

from cogniflow.domain.constants import LEECH_TAG
from cogniflow.domain.models import LeechAction, Reviewable

logger = logging.getLogger(__name__)


def is_leech(item: Reviewable, threshold: int) -> bool:
    """True when the item's failure count has reached ``threshold``."""
    if threshold < 1:
        raise ValueError(f"Leech threshold must be >= 1, got {threshold}")
    return item.lapses >= threshold


def apply_leech_action(item: Reviewable, action: LeechAction | str) -> Reviewable:
    """
    Apply the configured remediation to a leech.

    Args:
        item: An item already flagged by ``is_leech``.
        action: suspend (exclude from study), tag (add the 'leech' tag) or warn.

    Returns:
        The remediated item (the same object for 'warn').
    """
    action = LeechAction(action)

    if action is LeechAction.SUSPEND:
        logger.info(f"[leech] Suspending item {item.id} after {item.lapses} lapses")
        return dataclasses.replace(item, suspended=True)

    if action is LeechAction.TAG:
        logger.info(f"[leech] Tagging item {item.id} after {item.lapses} lapses")
        return dataclasses.replace(item, tags=item.tags | {LEECH_TAG})

    logger.warning(f"[leech] Item {item.id} has lapsed {item.lapses} times")
    return item
