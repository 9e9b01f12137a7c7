def human_size(size: int) -> str:
    """1536 -> '1.5 KB'"""
    value = float(size)
    for unit in ('B', 'KB', 'MB', 'GB'):
        if value < 1024 or unit == 'GB':
            if unit == 'B':
                return f"{int(value)} B"
            return f"{value:.1f} {unit}"
        value /= 1024
