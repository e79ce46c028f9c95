"""上传文件的分类与文本抽取。"""

from chat_core.uploads.extraction import extract_pdf_text, get_mime_type, process_upload

__all__ = ["extract_pdf_text", "get_mime_type", "process_upload"]
