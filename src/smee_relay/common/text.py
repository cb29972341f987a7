def excerpt(data: bytes, limit: int = 200) -> str:
    """Printable, truncated rendition of raw bytes for log lines."""
    text = data.decode("utf-8", errors="replace")
    return text if len(text) <= limit else f"{text[:limit]}..."
