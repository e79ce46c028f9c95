"""上传助手：按扩展名分类文件，并把可读内容转成文本或 base64。

PDF 文本抽取是一个启发式的字节扫描，而不是真正的 PDF 解析器：
只处理 BT…ET 文本块里的字面量字符串（(…) 与 <hex>）。使用对象流、
压缩内容流或非拉丁编码字体的 PDF 会被漏抽或抽出乱码，此时返回
“内容过少”的提示文本，由模型自行判断。
"""

import base64
import re
from pathlib import PurePath

from chat_core.domain.models import UploadDescriptor
from chat_core.infrastructure.logging.logger import logger


MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "md": "text/markdown",
    "json": "application/json",
    "csv": "text/csv",
    "js": "text/javascript",
    "ts": "text/typescript",
    "html": "text/html",
    "css": "text/css",
    "py": "text/x-python",
    "rs": "text/x-rust",
}
DEFAULT_MIME_TYPE = "application/octet-stream"

MIN_PDF_TEXT_CHARS = 50
PDF_MINIMAL_CONTENT = (
    "[PDF text extraction yielded minimal content: the PDF may use embedded fonts or images for text]"
)
PDF_EXTRACTION_FAILED = "[Could not extract PDF text]"

_BT_ET = re.compile(r"BT([\s\S]*?)ET")
_STRING_OPERAND = re.compile(r"\(([^)\\]*(?:\\.[^)\\]*)*)\)|<([0-9a-fA-F]+)>")
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "(": "(", ")": ")", "\\": "\\"}
_ESCAPE_SEQ = re.compile(r"\\([nrt()\\])")
_WHITESPACE = re.compile(r"\s+")


def get_mime_type(filename: str) -> str:
    """只根据扩展名推断 MIME 类型，未知扩展名返回 application/octet-stream。"""

    suffix = PurePath(filename or "").suffix.lower().lstrip(".")
    return MIME_TYPES.get(suffix, DEFAULT_MIME_TYPE)


def _unescape_literal(raw: str) -> str:
    return _ESCAPE_SEQ.sub(lambda m: _ESCAPES[m.group(1)], raw)


def _decode_hex(raw: str) -> str:
    # 每两位十六进制对应一个字符；奇数长度时最后一位单独解析
    return "".join(chr(int(raw[i:i + 2], 16)) for i in range(0, len(raw), 2))


def extract_pdf_text(data: bytes) -> str:
    """从 PDF 字节中抽取文本，永远不抛异常。

    抽取结果不超过 50 个字符时返回 PDF_MINIMAL_CONTENT；
    解析过程中出现任何异常时返回 PDF_EXTRACTION_FAILED。
    """

    try:
        source = data.decode("latin-1")
        texts = []
        for block in _BT_ET.finditer(source):
            body = block.group(1)
            if not body:
                continue
            for operand in _STRING_OPERAND.finditer(body):
                literal, hex_string = operand.group(1), operand.group(2)
                if literal is not None:
                    texts.append(_unescape_literal(literal))
                elif hex_string is not None:
                    texts.append(_decode_hex(hex_string))
        result = _WHITESPACE.sub(" ", " ".join(texts)).strip()
    except Exception as e:
        logger.warning(f"PDF extraction failed: {e}")
        return PDF_EXTRACTION_FAILED
    if len(result) <= MIN_PDF_TEXT_CHARS:
        return PDF_MINIMAL_CONTENT
    return result


def _is_text_mime(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type == "application/json"


def process_upload(filename: str, data: bytes) -> UploadDescriptor:
    """对上传文件分类并转换为统一描述。

    - PDF: 抽取文本（type=text）。
    - text/* 与 JSON: 按 UTF-8 原样解码（type=text）。
    - image/*: base64（type=image）。
    - 其他: base64（type=binary）。
    """

    mime_type = get_mime_type(filename)
    size = len(data)

    if mime_type == "application/pdf":
        return UploadDescriptor(
            type="text", filename=filename, content=extract_pdf_text(data), mime_type=mime_type, size=size
        )

    if _is_text_mime(mime_type):
        return UploadDescriptor(
            type="text",
            filename=filename,
            content=data.decode("utf-8", errors="replace"),
            mime_type=mime_type,
            size=size,
        )

    encoded = base64.b64encode(data).decode("ascii")
    display_type = "image" if mime_type.startswith("image/") else "binary"
    return UploadDescriptor(type=display_type, filename=filename, content=encoded, mime_type=mime_type, size=size)
