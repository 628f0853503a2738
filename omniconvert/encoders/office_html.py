"""
DOCX target: Office-flavoured HTML.

This is an HTML-import compatibility shim, not OOXML packaging. Word opens
the file through its HTML import; the conditional comment block makes it
start in Print layout at 100% zoom. The payload carries a UTF-8 byte-order
mark and the legacy ``application/msword`` content type.
"""

import html
from string import Template
from typing import Optional, Sequence

from ..content.nodes import Block
from ..content.serializers import to_html

UTF8_BOM = b"\xef\xbb\xbf"

DEFAULT_TITLE = "Converted Document"

OFFICE_HTML_TEMPLATE = Template("""<html xmlns:o='urn:schemas-microsoft-com:office:office' xmlns:w='urn:schemas-microsoft-com:office:word' xmlns='http://www.w3.org/TR/REC-html40'>
<head>
<meta charset="utf-8">
<title>$title</title>
<!--[if gte mso 9]>
<xml><w:WordDocument><w:View>Print</w:View><w:Zoom>100</w:Zoom></w:WordDocument></xml>
<![endif]-->
<style>
body { font-family: 'Calibri', 'Arial', sans-serif; font-size: 11pt; }
p { margin-bottom: 8pt; line-height: 1.2; }
</style>
</head>
<body>
$body
</body>
</html>
""")


def render_office_html(blocks: Sequence[Block], title: Optional[str] = None) -> str:
    """The Office-HTML document as text, without the byte-order mark."""
    return OFFICE_HTML_TEMPLATE.substitute(
        title=html.escape(title or DEFAULT_TITLE),
        body=to_html(blocks),
    )


def encode_office_html(blocks: Sequence[Block], title: Optional[str] = None) -> bytes:
    return UTF8_BOM + render_office_html(blocks, title).encode("utf-8")
