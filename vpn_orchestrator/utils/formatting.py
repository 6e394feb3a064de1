"""
Display formatting helpers
"""


def _scale(value: float, units) -> str:
    for unit in units[:-1]:
        if value < 1024.0:
            return f"{value:.2f} {unit}"
        value /= 1024.0
    return f"{value:.2f} {units[-1]}"


def format_bytes(bytes_count: float) -> str:
    """Convert bytes to human readable format"""
    if bytes_count <= 0:
        return "0 B"
    return _scale(float(bytes_count), ['B', 'KB', 'MB', 'GB', 'TB'])


def format_speed(bytes_per_second: float) -> str:
    """Convert a byte rate to human readable format"""
    if bytes_per_second <= 0:
        return "0 B/s"
    return _scale(float(bytes_per_second), ['B/s', 'KB/s', 'MB/s', 'GB/s'])


def format_duration(seconds: float) -> str:
    """Format seconds as HH:MM:SS"""
    seconds = max(0, int(seconds))
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
