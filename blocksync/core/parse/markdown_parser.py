import logging
import re
from typing import Callable, Dict, List, Optional, Tuple
from blocksync.models.block import BlockType, ParsedBlock
from blocksync.core.parse.normalizer import normalize
from blocksync.core.parse.fingerprint import content_hash
from blocksync.config.settings import ParserConfig, settings

logger = logging.getLogger(__name__)

_HEADING = re.compile(r"^(#{1,6})(?=\s|$)")
_HORIZONTAL_RULE = re.compile(r"^(\*{3,}|-{3,}|_{3,}|~{3,})$")
_LIST_MARKER = re.compile(r"^(\s*)([-*+]|\d+\.)\s+")
_LIST_ITEM = re.compile(r"^(\s*)([-*+]|\d+\.)\s+(.+)$")
_CAPTION = re.compile(r"^\[(IMAGE|TABLE|FORMULA)-CAPTION:\s*(.+)\]$")
_IMAGE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")

# Rule names in priority order; the first that matches a line wins
HEADING = "heading"
HORIZONTAL_RULE = "horizontal_rule"
LIST = "list"
QUOTE = "quote"
CODE = "code"
TABLE = "table"
CAPTION = "caption"
IMAGE = "image"
FORMULA = "formula"
PARAGRAPH = "paragraph"

def detect_rule(line: str) -> Optional[str]:
    """
    Returns the structural rule a line opens, or None when it can only be paragraph text.
    Expects a right-trimmed, non-blank line.
    """
    if _HEADING.match(line):
        return HEADING
    if _HORIZONTAL_RULE.match(line):
        return HORIZONTAL_RULE
    if _LIST_MARKER.match(line):
        return LIST
    if line.startswith(">"):
        return QUOTE
    if line.startswith("```"):
        return CODE
    if line.count("|") >= 2:
        return TABLE
    if _CAPTION.match(line):
        return CAPTION
    if _IMAGE.search(line):
        return IMAGE
    if line.startswith("\\["):
        return FORMULA
    return None

class MarkdownBlockParser:
    """
    Line-oriented block scanner.
    - Walks the document with a cursor; the first matching rule emits one block.
    - Every rule returns its inclusive end line; the cursor resumes after it.
    - All scanning state is local to parse(), so one instance is safe to share across threads.
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        self.config = config or settings.parser
        self._rules: Dict[str, Callable[[List[str], int], Tuple[ParsedBlock, int]]] = {
            HEADING: self._parse_heading,
            HORIZONTAL_RULE: self._parse_horizontal_rule,
            LIST: self._parse_list,
            QUOTE: self._parse_quote,
            CODE: self._parse_code_block,
            TABLE: self._parse_table,
            CAPTION: self._parse_caption,
            IMAGE: self._parse_image,
            FORMULA: self._parse_formula_block,
            PARAGRAPH: self._parse_paragraph,
        }

    def parse(self, markdown: str) -> List[ParsedBlock]:
        """
        Main entry point. Always terminates and returns a best-effort block list.
        """
        lines = (markdown or "").split("\n")
        blocks: List[ParsedBlock] = []
        max_iterations = len(lines) * self.config.iteration_factor

        i = 0
        iteration_count = 0
        while i < len(lines):
            if iteration_count >= max_iterations:
                logger.error(
                    f"Iteration cap hit: max_iterations={max_iterations} cursor={i} "
                    f"line_count={len(lines)}; returning {len(blocks)} blocks parsed so far"
                )
                break
            iteration_count += 1

            trimmed_line = lines[i].rstrip()
            if not trimmed_line:
                i += 1
                continue

            rule = detect_rule(trimmed_line) or PARAGRAPH
            block, end_line = self._rules[rule](lines, i)
            blocks.append(block)
            i = self._advance(rule, i, end_line)

        return blocks

    def _advance(self, rule: str, cursor: int, end_line: int) -> int:
        next_cursor = end_line + 1
        if next_cursor > cursor:
            return next_cursor
        logger.warning(
            f"Rule '{rule}' did not advance: start_line={cursor} end_line={end_line}; forcing cursor to {cursor + 1}"
        )
        return cursor + 1

    def _create_block(self, block_type: BlockType, start_line: int, end_line: int,
                      raw_text: str, normalized_text: str) -> ParsedBlock:
        return ParsedBlock(
            block_type=block_type,
            start_line=start_line,
            end_line=end_line,
            raw_text=raw_text,
            normalized_text=normalized_text,
            content_hash=content_hash(normalized_text)
        )

    # --- Single-line rules ---

    def _parse_heading(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        trimmed_line = lines[start].rstrip()
        level = len(_HEADING.match(trimmed_line).group(1))
        text = trimmed_line[level:].strip()
        normalized_text = f"HEADING({level}): {normalize(text)}"
        return self._create_block(BlockType.heading, start, start, lines[start], normalized_text), start

    def _parse_horizontal_rule(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        return self._create_block(BlockType.horizontal_rule, start, start, lines[start], "HORIZONTAL_RULE"), start

    def _parse_caption(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        match = _CAPTION.match(lines[start].rstrip())
        caption_type, caption_text = match.group(1), match.group(2).strip()
        normalized_text = f"{caption_type}_CAPTION: {normalize(caption_text)}"
        return self._create_block(BlockType.caption, start, start, lines[start], normalized_text), start

    def _parse_image(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        match = _IMAGE.search(lines[start].rstrip())
        alt_text, url = match.group(1), match.group(2)
        normalized_text = f'IMAGE: alt="{normalize(alt_text)}" url="{url}"'
        return self._create_block(BlockType.image, start, start, lines[start], normalized_text), start

    # --- Multi-line rules ---

    def _parse_list(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        raw_lines = []
        normalized_parts = []
        base_indent = 0
        i = start

        while i < len(lines):
            line = lines[i]
            trimmed_line = line.rstrip()
            if not trimmed_line:
                break

            match = _LIST_ITEM.match(trimmed_line)
            if match:
                indent = len(match.group(1))
                if not raw_lines:
                    base_indent = indent
                # Truncates toward zero: a one-space dedent stays on level 1
                level = int((indent - base_indent) / 2) + 1
                raw_lines.append(line)
                normalized_parts.append(f"LIST_ITEM(level={level}): {normalize(match.group(3))}")
            elif trimmed_line.startswith(" " * (base_indent + 2)):
                # Continuation of the previous item
                raw_lines.append(line)
                normalized_parts.append(normalize(trimmed_line))
            else:
                break
            i += 1

        block = self._create_block(
            BlockType.list_item, start, i - 1, "\n".join(raw_lines), " ".join(normalized_parts)
        )
        return block, i - 1

    def _parse_quote(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        raw_lines = []
        normalized_parts = []
        i = start

        while i < len(lines):
            line = lines[i]
            trimmed_line = line.rstrip()
            if not trimmed_line or not trimmed_line.startswith(">"):
                break

            level = len(trimmed_line) - len(trimmed_line.lstrip(">"))
            text = trimmed_line[level:].lstrip()
            raw_lines.append(line)
            normalized_parts.append(f"QUOTE(level={level}): {normalize(text)}")
            i += 1

        block = self._create_block(
            BlockType.quote, start, i - 1, "\n".join(raw_lines), " ".join(normalized_parts)
        )
        return block, i - 1

    def _parse_code_block(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        raw_lines = [lines[start]]
        code_lines = []
        language = lines[start].strip()[3:].strip()
        limit = min(start + self.config.max_fence_lines, len(lines))

        end_line = None
        i = start + 1
        while i < limit:
            line = lines[i]
            raw_lines.append(line)
            if line.strip().startswith("```"):
                end_line = i
                break
            code_lines.append(line)
            i += 1

        if end_line is None:
            end_line = i - 1
            logger.warning(f"Unterminated code fence at line {start}; block ends at line {end_line}")

        # Only the head of the code feeds the fingerprint
        code_content = "\n".join(code_lines[:self.config.code_hash_lines])
        normalized_text = f"CODE_BLOCK(language={language}): {code_content}"
        return self._create_block(BlockType.code, start, end_line, "\n".join(raw_lines), normalized_text), end_line

    def _parse_table(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        raw_lines = [lines[start]]
        columns = self._split_cells(lines[start].rstrip())
        normalized_parts = [f"TABLE: {' | '.join(columns)}"]
        i = start + 1

        # Separator row (|---|---|); dash syntax is not validated
        if i < len(lines) and "|" in lines[i].strip():
            raw_lines.append(lines[i])
            i += 1

        while i < len(lines):
            trimmed_line = lines[i].rstrip()
            if not trimmed_line or "|" not in trimmed_line:
                break
            raw_lines.append(lines[i])
            cells = [normalize(cell) for cell in self._split_cells(trimmed_line)]
            normalized_parts.append(f"ROW: {' | '.join(cells)}")
            i += 1

        block = self._create_block(
            BlockType.table_row, start, i - 1, "\n".join(raw_lines), " ".join(normalized_parts)
        )
        return block, i - 1

    def _split_cells(self, line: str) -> List[str]:
        return [cell.strip() for cell in line.split("|") if cell.strip()]

    def _parse_formula_block(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        opening = lines[start].strip()

        # \[ x \] on one line
        if len(opening) >= 4 and opening.endswith("\\]"):
            formula = opening[2:-2].strip()
            return self._create_block(
                BlockType.formula, start, start, lines[start], f"FORMULA_BLOCK: {formula}"
            ), start

        raw_lines = [lines[start]]
        formula_lines = [opening[2:].strip()] if opening[2:].strip() else []
        limit = min(start + self.config.max_fence_lines, len(lines))

        end_line = None
        i = start + 1
        while i < limit:
            line = lines[i]
            raw_lines.append(line)
            if line.strip().startswith("\\]"):
                end_line = i
                break
            formula_lines.append(line.strip())
            i += 1

        if end_line is None:
            end_line = i - 1
            logger.warning(f"Unterminated block formula at line {start}; block ends at line {end_line}")

        normalized_text = f"FORMULA_BLOCK: {' '.join(formula_lines)}"
        return self._create_block(BlockType.formula, start, end_line, "\n".join(raw_lines), normalized_text), end_line

    def _parse_paragraph(self, lines: List[str], start: int) -> Tuple[ParsedBlock, int]:
        raw_lines = []
        normalized_parts = []
        end_line = start - 1
        i = start

        while i < len(lines):
            line = lines[i]
            trimmed_line = line.rstrip()
            if not trimmed_line:
                break

            raw_lines.append(line)
            normalized_parts.append(normalize(trimmed_line))
            end_line = i

            # One line of lookahead: stop before a line that opens another block
            if i + 1 < len(lines):
                next_line = lines[i + 1].rstrip()
                if next_line and detect_rule(next_line) is not None:
                    break
            i += 1

        block = self._create_block(
            BlockType.paragraph, start, end_line, "\n".join(raw_lines), " ".join(normalized_parts)
        )
        return block, end_line

def parse(markdown: str) -> List[ParsedBlock]:
    """Parses with the configured defaults."""
    return MarkdownBlockParser().parse(markdown)
