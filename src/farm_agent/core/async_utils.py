"""
Async file helpers used when a report is written with --output.
"""

import aiofiles


async def write_file_async(
    filepath: str, content: str, encoding: str = "utf-8", mode: str = "w"
) -> None:
    """
    Write a rendered report.

    Args:
        filepath: Destination path
        content: Report text
        encoding: Text encoding
        mode: 'w' replaces the file, 'a' appends to it
    """
    async with aiofiles.open(filepath, mode=mode, encoding=encoding) as report_file:
        await report_file.write(content)
