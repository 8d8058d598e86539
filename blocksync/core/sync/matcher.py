from typing import Dict, List, Optional, Set
from blocksync.models.block import ParsedBlock
from blocksync.models.document import PersistedBlock
from blocksync.models.sync import BlockMatch, MatchResult
from blocksync.core.errors import ConfigurationError

class RangeMatcher:
    """
    Strict line-range keying: a parsed block claims the live block with the same (start_line, end_line).
    Inserting lines above a block shifts its key, so it is retired and recreated.
    """

    def match(self, parsed_blocks: List[ParsedBlock], existing: List[PersistedBlock]) -> MatchResult:
        by_range: Dict[tuple, PersistedBlock] = {}
        for block in existing:
            if block.deleted_at is None:
                by_range[block.line_range] = block

        claimed_ids: Set[str] = set()
        matches = []
        for parsed in parsed_blocks:
            counterpart = by_range.get(parsed.line_range)
            if counterpart is not None:
                claimed_ids.add(counterpart.id)
            matches.append(BlockMatch(parsed=parsed, existing=counterpart))

        # Duplicated keys in the store resolve to the last block; the others are retired
        unclaimed = [b for b in existing if b.deleted_at is None and b.id not in claimed_ids]
        return MatchResult(matches=matches, unclaimed=unclaimed)

class HashThenRangeMatcher:
    """
    Two-pass matching that survives line shifts.
    Pass 1: identical content hash anywhere (same range first, then the nearest start line).
    Pass 2: the remaining blocks claim the best overlapping range (exact key, then largest overlap).
    """

    def match(self, parsed_blocks: List[ParsedBlock], existing: List[PersistedBlock]) -> MatchResult:
        live = [b for b in existing if b.deleted_at is None]
        assigned: Dict[int, PersistedBlock] = {}
        claimed_ids: Set[str] = set()

        by_hash: Dict[str, List[PersistedBlock]] = {}
        for block in live:
            by_hash.setdefault(block.content_hash, []).append(block)

        # 1a. Unchanged in place
        for idx, parsed in enumerate(parsed_blocks):
            for candidate in by_hash.get(parsed.content_hash, []):
                if candidate.id not in claimed_ids and candidate.line_range == parsed.line_range:
                    assigned[idx] = candidate
                    claimed_ids.add(candidate.id)
                    break

        # 1b. Unchanged but moved
        for idx, parsed in enumerate(parsed_blocks):
            if idx in assigned:
                continue
            candidates = [c for c in by_hash.get(parsed.content_hash, []) if c.id not in claimed_ids]
            if candidates:
                best = min(candidates, key=lambda c: (abs(c.start_line - parsed.start_line), c.start_line))
                assigned[idx] = best
                claimed_ids.add(best.id)

        # 2. Changed content: fall back to range overlap
        for idx, parsed in enumerate(parsed_blocks):
            if idx in assigned:
                continue
            best = self._best_overlap(parsed, [c for c in live if c.id not in claimed_ids])
            if best is not None:
                assigned[idx] = best
                claimed_ids.add(best.id)

        matches = [BlockMatch(parsed=p, existing=assigned.get(idx)) for idx, p in enumerate(parsed_blocks)]
        unclaimed = [b for b in live if b.id not in claimed_ids]
        return MatchResult(matches=matches, unclaimed=unclaimed)

    def _best_overlap(self, parsed: ParsedBlock, candidates: List[PersistedBlock]) -> Optional[PersistedBlock]:
        scored = []
        for c in candidates:
            overlap = min(c.end_line, parsed.end_line) - max(c.start_line, parsed.start_line) + 1
            if overlap > 0:
                scored.append((c.line_range != parsed.line_range, -overlap, abs(c.start_line - parsed.start_line), c.start_line, c))
        if not scored:
            return None
        return min(scored, key=lambda s: s[:4])[4]

def create_matcher(strategy: str):
    if strategy == "range":
        return RangeMatcher()
    if strategy == "hash_then_range":
        return HashThenRangeMatcher()
    raise ConfigurationError(f"Unknown match strategy: {strategy!r}")
