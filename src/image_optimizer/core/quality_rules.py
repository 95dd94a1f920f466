"""Per-image quality rule resolution."""

from __future__ import annotations

import logging
from fnmatch import fnmatchcase
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import PurePath

    from ..config.settings import QualityRule

LOG = logging.getLogger(__name__)


def _normalize_dir(directory: str) -> str:
    """Return a posix directory prefix with a single trailing slash ('' for the root)."""
    cleaned = directory.replace("\\", "/").strip("/")
    if cleaned in {"", "."}:
        return ""
    return f"{PurePosixPath(cleaned)}/"


def rule_matches(rule: QualityRule, filename: str, relative_dir: str, probed_width: int | None) -> bool:
    """Check that every predicate the rule declares holds for the file."""
    if rule.specificity == 0:
        return False

    if rule.pattern is not None and not fnmatchcase(filename, rule.pattern):
        return False

    if rule.directory is not None:
        prefix = _normalize_dir(rule.directory)
        if not _normalize_dir(relative_dir).startswith(prefix):
            return False

    if rule.needs_width:
        if probed_width is None:
            return False
        if rule.min_width is not None and probed_width < rule.min_width:
            return False
        if rule.max_width is not None and probed_width > rule.max_width:
            return False

    return True


def select_rule(
    filename: str, relative_dir: str, probed_width: int | None, rules: Sequence[QualityRule]
) -> QualityRule | None:
    """
    Pick the winning rule for a file.

    The most specific matching rule wins; among equally specific matches the
    later-declared rule wins.
    """
    winner: QualityRule | None = None
    for rule in rules:
        if not rule_matches(rule, filename, relative_dir, probed_width):
            continue
        if winner is None or rule.specificity >= winner.specificity:
            winner = rule
    return winner


def resolve_quality(
    file_path: PurePath,
    relative_dir: str,
    probed_width: int | None,
    default_quality: Mapping[str, int],
    rules: Sequence[QualityRule],
) -> dict[str, int]:
    """
    Resolve the effective per-format quality for one image.

    Args:
        file_path: Path of the image; only its name is matched against patterns
        relative_dir: Directory of the image relative to the input root
        probed_width: Pixel width of the image, if known
        default_quality: Quality map used when no rule matches
        rules: Quality rules in declaration order

    Returns:
        A new quality map; default_quality is never modified

    """
    quality = dict(default_quality)
    rule = select_rule(file_path.name, relative_dir, probed_width, rules)
    if rule is None:
        return quality

    quality.update(rule.quality)
    LOG.info("Applying custom quality for %s (%s): %s", file_path.name, rule.describe(), quality)
    return quality


def rules_need_width(rules: Sequence[QualityRule]) -> bool:
    """Whether resolving these rules requires probing image dimensions."""
    return any(rule.needs_width for rule in rules)
