from typing import Dict, List
from blocksync.models.document import PersistedBlock
from blocksync.models.sync import CoverageReport, LineCoverageStatus

class CoverageReporter:
    """
    Line-level view of which parts of a document currently have an embedding.
    Only live blocks with a non-null embedding count; ranges are clipped to the current document.
    """

    def report(self, document_id: str, content: str, blocks: List[PersistedBlock]) -> CoverageReport:
        lines = (content or "").split("\n")

        block_id_by_line: Dict[int, str] = {}
        for block in blocks:
            if block.deleted_at is not None or block.embedding is None:
                continue
            for line_number in range(max(block.start_line, 0), min(block.end_line, len(lines) - 1) + 1):
                block_id_by_line[line_number] = block.id

        line_statuses = []
        total_non_empty = 0
        covered_non_empty = 0

        for i, line in enumerate(lines):
            is_empty = not line.strip()
            block_id = block_id_by_line.get(i)
            line_statuses.append(LineCoverageStatus(
                line_number=i,
                is_covered=block_id is not None,
                block_id=block_id,
                is_empty=is_empty
            ))
            if not is_empty:
                total_non_empty += 1
                if block_id is not None:
                    covered_non_empty += 1

        percentage = covered_non_empty / total_non_empty * 100.0 if total_non_empty > 0 else 0.0

        return CoverageReport(
            document_id=document_id,
            percentage=percentage,
            total_non_empty_lines=total_non_empty,
            covered_non_empty_lines=covered_non_empty,
            line_statuses=line_statuses
        )
