from enum import Enum
from typing import Tuple
from pydantic import BaseModel

class BlockType(str, Enum):
    paragraph = "Paragraph"
    heading = "Heading"
    table_row = "TableRow"
    code = "Code"
    list_item = "ListItem"
    caption = "Caption"
    formula = "Formula"
    image = "Image"
    quote = "Quote"
    horizontal_rule = "HorizontalRule"
    link = "Link"                    # reserved, the parser never emits it

class ParsedBlock(BaseModel):
    block_type: BlockType
    start_line: int                  # 0-based, inclusive
    end_line: int                    # 0-based, inclusive
    raw_text: str                    # source lines joined by "\n"
    normalized_text: str
    content_hash: str                # sha256(normalized_text), lowercase hex

    @property
    def line_range(self) -> Tuple[int, int]:
        return (self.start_line, self.end_line)
