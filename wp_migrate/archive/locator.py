"""
wp-content directory scoring.

Backup tools nest wp-content at different depths and sometimes ship more
than one (for example a stale copy under a cache directory). Every candidate
is scored by which of plugins/, themes/ and uploads/ it contains and the best
one wins, shallowest first on ties.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

CONTENT_DIR_NAME = "wp-content"
EXPECTED_CHILDREN = ("plugins", "themes", "uploads")


class ContentLocator:
    """Find the most plausible wp-content directory under a root."""

    def __init__(self, dir_name: str = CONTENT_DIR_NAME):
        self.dir_name = dir_name

    @staticmethod
    def score(path: Union[str, Path]) -> int:
        """Score a candidate 0-3 by the expected child directories it contains."""
        path = Path(path)
        return sum(1 for child in EXPECTED_CHILDREN if (path / child).is_dir())

    @staticmethod
    def flags(path: Union[str, Path]) -> Tuple[bool, bool, bool]:
        """Return (has_plugins, has_themes, has_uploads)."""
        path = Path(path)
        return tuple((path / child).is_dir() for child in EXPECTED_CHILDREN)

    def find_candidates(self, root: Union[str, Path]) -> List[Path]:
        """
        Return every directory named like a content root under ``root``.

        The walk is recursive, does not follow symlinks and is sorted so the
        result does not depend on directory listing order.
        """
        root = Path(root)
        candidates = []
        if root.name == self.dir_name and root.is_dir():
            candidates.append(root)
        for dirpath, dirnames, _ in os.walk(root, followlinks=False):
            dirnames.sort()
            for name in dirnames:
                if name == self.dir_name:
                    candidates.append(Path(dirpath) / name)
        return candidates

    def pick_best(self, candidates: Iterable[Path]) -> Optional[Path]:
        """Best-scoring candidate, ties broken by depth then path."""
        candidates = list(candidates)
        if not candidates:
            return None

        scored = [(self.score(c), c) for c in candidates]
        best_score = max(score for score, _ in scored)
        if best_score == 0:
            logger.warning(
                f"No {self.dir_name} candidate contains plugins/, themes/ or uploads/; "
                f"using {candidates[0]} (low confidence)"
            )
            return candidates[0]

        best = min(
            (c for score, c in scored if score == best_score),
            key=lambda c: (len(c.parts), str(c))
        )
        logger.debug(f"Selected {best} (score {best_score}/3) from {len(candidates)} candidate(s)")
        return best

    def locate_best(self, root: Union[str, Path]) -> Optional[Path]:
        """Find and return the best content directory under ``root``, or None."""
        return self.pick_best(self.find_candidates(root))

    def locate_best_nested(self, roots: Iterable[Union[str, Path]]) -> Optional[Path]:
        """
        Best-of-best search across several roots.

        Used for multisite layouts where each site group has its own tree.
        Only candidates that score above zero are considered.
        """
        winners = []
        for root in roots:
            candidates = [c for c in self.find_candidates(root) if self.score(c) > 0]
            best = self.pick_best(candidates)
            if best is not None:
                winners.append(best)
        if not winners:
            return None
        return max(winners, key=lambda c: (self.score(c), -len(c.parts)))
