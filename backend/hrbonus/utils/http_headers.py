"""
HTTP header 工具：RFC 5987 Content-Disposition 支援中文檔名。
Starlette/FastAPI 的 header 僅支援 latin-1，不可直接塞中文；
使用 filename (ASCII fallback) + filename*=UTF-8''... 可讓瀏覽器正確顯示中文檔名。
"""
from urllib.parse import quote


def build_content_disposition(ascii_filename: str, unicode_filename: str) -> str:
    """
    組出 RFC 5987 的 Content-Disposition 字串，供 Response headers 使用。

    範例：
        build_content_disposition(
            "bonus_allocations_12_2025-Q2.xlsx",
            "項目獎金分配_12_2025-Q2.xlsx"
        )
    """
    ascii_part = f'attachment; filename="{ascii_filename}"'
    # RFC 5987: filename*=UTF-8''%encoded
    encoded = quote(unicode_filename, safe="")
    return f"{ascii_part}; filename*=UTF-8''{encoded}"
